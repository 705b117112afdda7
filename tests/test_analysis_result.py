"""Tests for analysis result parsing, merging and per-image grouping."""

from conftest import output_uri, sample_inference_result

from processor.analysis_result import (
    AnalysisStatus,
    CopyWarning,
    group_detections_by_image,
    is_terminal_status,
    merge_copied_images,
    parse_analysis_result,
)


def test_terminal_statuses():
    assert is_terminal_status("completed")
    assert is_terminal_status("failed")
    assert not is_terminal_status("analyzing")
    assert not is_terminal_status("pending")
    assert not is_terminal_status(None)
    assert AnalysisStatus.FAILED.is_terminal
    assert not AnalysisStatus.ANALYZING.is_terminal


def test_parse_dedupes_fraud_signals_and_collects_unique_uris():
    result = parse_analysis_result(sample_inference_result())

    assert result.total_images_analyzed == 3
    assert len(result.detections) == 4
    assert result.fraud_signals == ["No weather report available"]
    assert result.unique_output_uris() == [
        output_uri("annotated-a.jpg"),
        output_uri("annotated-b.jpg"),
    ]


def test_parse_tolerates_malformed_values():
    result = parse_analysis_result({
        "detections": [
            {"label": "dent", "confidence": "1.7", "bbox": [1, 2], "image_reference": "a.jpg"},
            {"confidence": None, "bbox": ["x", 1, 2, 3], "image_reference": "b.jpg"},
            "not a detection",
        ],
        "peril_match": {"match": "definitely"},
        "fraud_signals": "not a list",
    })

    first, second = result.detections
    assert first.confidence == 1.0
    assert first.bbox == [0.0, 0.0, 0.0, 0.0]
    assert second.label == "unknown"
    assert second.confidence == 0.0
    assert result.peril_match.match == "no_match"
    assert result.fraud_signals == []
    # Falls back to the number of distinct referenced images
    assert result.total_images_analyzed == 2


def test_merge_sets_local_paths_only_for_copied_images():
    result = parse_analysis_result(sample_inference_result())
    warning = CopyWarning(
        source_uri=output_uri("annotated-b.jpg"),
        error_name="ClientError",
        error_message="Access Denied",
    )

    merge_copied_images(
        result,
        {output_uri("annotated-a.jpg"): "incident-photos/R1/analyzed-1-aa.jpeg"},
        [warning],
    )

    assert result.all_local_paths == ["incident-photos/R1/analyzed-1-aa.jpeg"]
    assert [d.local_output_path for d in result.detections] == [
        "incident-photos/R1/analyzed-1-aa.jpeg",
        "incident-photos/R1/analyzed-1-aa.jpeg",
        "incident-photos/R1/analyzed-1-aa.jpeg",
        None,
    ]
    for detection in result.detections:
        if detection.local_output_path:
            assert detection.local_output_path in result.all_local_paths
    assert result.copy_warnings == [warning]


def test_detection_without_local_path_omits_key():
    result = parse_analysis_result(sample_inference_result())
    merge_copied_images(result, {}, [])

    assert "local_output_path" not in result.detections[0].to_dict()


def test_grouping_by_local_path():
    result = parse_analysis_result(sample_inference_result())
    merge_copied_images(
        result,
        {
            output_uri("annotated-a.jpg"): "local/a.jpeg",
            output_uri("unused.jpg"): "local/unused.jpeg",
        },
        [],
    )

    groups = group_detections_by_image(result)

    assert set(groups) == {"local/a.jpeg", "local/unused.jpeg"}
    assert len(groups["local/a.jpeg"]) == 3
    assert groups["local/unused.jpeg"] == []
    grouped = [d for detections in groups.values() for d in detections]
    assert all(d.output_s3_uri != output_uri("annotated-b.jpg") for d in grouped)


def test_stored_result_round_trips_through_parse():
    result = parse_analysis_result(sample_inference_result())
    merge_copied_images(result, {output_uri("annotated-a.jpg"): "local/a.jpeg"}, [
        CopyWarning(output_uri("annotated-b.jpg"), "ClientError", "denied"),
    ])

    reloaded = parse_analysis_result(result.to_dict())

    assert reloaded.all_local_paths == ["local/a.jpeg"]
    assert reloaded.copy_warnings[0].source_uri == output_uri("annotated-b.jpg")
    assert reloaded.detections[0].local_output_path == "local/a.jpeg"
    assert reloaded.detections[3].local_output_path is None


def test_parse_ignores_non_list_collections():
    result = parse_analysis_result({"detections": 3, "copy_warnings": True, "all_local_paths": "x"})

    assert result.detections == []
    assert result.copy_warnings == []
    assert result.all_local_paths == []
    assert result.total_images_analyzed == 0
