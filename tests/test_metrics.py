import json

import numpy as np
import pandas as pd
import pytest

from facespace.database import REPORT_COLUMNS
from facespace.metrics import (
    calculate_confidence_intervals, compare_algorithms, compute_recognition_metrics, save_metrics_to_json
)


def make_report(rows):
    records = []
    for image, true_class, algorithm, match_class in rows:
        correct = None if true_class is None else match_class == true_class
        records.append({
            "image": image, "true_class": true_class, "algorithm": algorithm,
            "match_index": 0, "match_class": match_class, "match_name": f"{match_class}_0.pgm",
            "distance": 1.0, "correct": correct
        })
    return pd.DataFrame(records, columns=REPORT_COLUMNS)


@pytest.fixture
def report():
    return make_report([
        ("1_4.pgm", 1, "PCA", 1), ("1_4.pgm", 1, "LDA", 1),
        ("2_4.pgm", 2, "PCA", 3), ("2_4.pgm", 2, "LDA", 2),
        ("3_4.pgm", 3, "PCA", 3), ("3_4.pgm", 3, "LDA", 3),
        ("who.pgm", None, "PCA", 2), ("who.pgm", None, "LDA", 2),
    ])


def test_metrics_ignore_unlabeled_images(report):
    metrics = compute_recognition_metrics(report, "PCA")
    assert metrics["n_images"] == 3
    assert metrics["n_correct"] == 2
    assert metrics["accuracy"] == pytest.approx(2 / 3)
    assert metrics["labels"] == [1, 2, 3]
    assert metrics["confusion_matrix"] == [[1, 0, 0], [0, 0, 1], [0, 0, 1]]


def test_metrics_without_labels():
    report = make_report([("who.pgm", None, "PCA", 1)])
    metrics = compute_recognition_metrics(report, "PCA")
    assert metrics["n_images"] == 0
    assert np.isnan(metrics["accuracy"])


def test_compare_algorithms_sorted_by_accuracy(report):
    summary = compare_algorithms(report)
    assert list(summary["algorithm"]) == ["LDA", "PCA"]
    assert summary.loc[0, "accuracy"] == 1.0
    assert summary.loc[0, "n_correct"] == 3
    assert (summary["acc_lower"] <= summary["acc_upper"]).all()


def test_confidence_interval_bounds():
    y_true = np.array([1, 1, 2, 2, 3, 3, 4, 4])
    y_pred = np.array([1, 2, 2, 2, 3, 1, 4, 4])
    ci = calculate_confidence_intervals(y_true, y_pred, n_bootstrap=500, random_state=0)
    assert 0.0 <= ci["lower_bound"] <= ci["accuracy"] <= ci["upper_bound"] <= 1.0
    assert ci["confidence_level"] == 0.95

    again = calculate_confidence_intervals(y_true, y_pred, n_bootstrap=500, random_state=0)
    assert again == ci


def test_confidence_interval_perfect_accuracy():
    y = np.array([1, 2, 3])
    ci = calculate_confidence_intervals(y, y, n_bootstrap=100)
    assert ci["lower_bound"] == ci["upper_bound"] == 1.0
    assert ci["std"] == 0.0


def test_save_metrics_to_json(report, tmp_path):
    path = tmp_path / "pca.json"
    save_metrics_to_json(compute_recognition_metrics(report, "PCA"), path)
    loaded = json.loads(path.read_text())
    assert loaded["algorithm"] == "PCA"
    assert loaded["n_correct"] == 2
