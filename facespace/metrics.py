"""
This module computes and compares recognition metrics from the report
returned by FaceDatabase.recognize: accuracy, confusion matrices and
bootstrap confidence intervals, per algorithm.
"""

import json

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, confusion_matrix

import config


def labeled_rows(report):
    """Keep only the rows whose test image has a ground-truth label."""
    return report[report["true_class"].notna()]


def compute_recognition_metrics(report, algorithm):
    """
    Compute metrics for one algorithm of a recognition report.

    Args:
        report: DataFrame returned by FaceDatabase.recognize
        algorithm: "PCA", "LDA" or "ICA"

    Returns:
        dict: n_images, n_correct, accuracy, labels, confusion_matrix and
              confidence_interval; accuracy is NaN when no image is labeled
    """
    rows = labeled_rows(report[report["algorithm"] == algorithm])

    y_true = rows["true_class"].astype(int).to_numpy()
    y_pred = rows["match_class"].astype(int).to_numpy()

    metrics = {"algorithm": algorithm, "n_images": int(len(rows))}

    if len(rows) == 0:
        metrics.update({"n_correct": 0, "accuracy": float("nan"), "labels": [], "confusion_matrix": []})
        return metrics

    labels = sorted(set(y_true) | set(y_pred))
    metrics["n_correct"] = int(np.sum(y_true == y_pred))
    metrics["accuracy"] = float(accuracy_score(y_true, y_pred))
    metrics["labels"] = [int(v) for v in labels]
    metrics["confusion_matrix"] = confusion_matrix(y_true, y_pred, labels=labels).tolist()
    metrics["confidence_interval"] = calculate_confidence_intervals(y_true, y_pred)

    return metrics


def calculate_confidence_intervals(y_true, y_pred, n_bootstrap=None, confidence_level=None, random_state=None):
    """
    Compute confidence intervals for accuracy using bootstrap sampling.

    Args:
        y_true: Ground truth labels array
        y_pred: Predicted labels array
        n_bootstrap: Number of bootstrap iterations
        confidence_level: Desired confidence level (default 0.95 for 95% CI)
        random_state: Seed for the resampling

    Returns:
        dict: Dictionary containing mean accuracy, lower/upper bounds, and std
    """
    if n_bootstrap is None:
        n_bootstrap = config.BOOTSTRAP_ITERATIONS
    if confidence_level is None:
        confidence_level = config.CONFIDENCE_LEVEL
    if random_state is None:
        random_state = config.RANDOM_STATE

    n_samples = len(y_true)
    if n_samples == 0:
        return {"accuracy": 0.0, "lower_bound": 0.0, "upper_bound": 0.0,
                "confidence_level": confidence_level, "std": 0.0}

    rng = np.random.default_rng(random_state)
    hits = (np.asarray(y_true) == np.asarray(y_pred)).astype(float)

    # Sample with replacement
    indices = rng.integers(0, n_samples, size=(n_bootstrap, n_samples))
    bootstrap_accuracies = hits[indices].mean(axis=1)

    alpha = 1 - confidence_level
    lower_bound = np.percentile(bootstrap_accuracies, (alpha / 2) * 100)
    upper_bound = np.percentile(bootstrap_accuracies, (1 - alpha / 2) * 100)

    return {
        "accuracy": float(np.mean(bootstrap_accuracies)),
        "lower_bound": float(lower_bound),
        "upper_bound": float(upper_bound),
        "confidence_level": confidence_level,
        "std": float(np.std(bootstrap_accuracies))
    }


def compare_algorithms(report):
    """
    Summarize a recognition report with one row per algorithm.

    Returns:
        pd.DataFrame: algorithm, n_images, n_correct, accuracy, acc_lower,
                      acc_upper; sorted by accuracy
    """
    rows = []
    for algorithm in report["algorithm"].unique():
        metrics = compute_recognition_metrics(report, algorithm)
        ci = metrics.get("confidence_interval", {})
        rows.append({
            "algorithm": algorithm,
            "n_images": metrics["n_images"],
            "n_correct": metrics["n_correct"],
            "accuracy": metrics["accuracy"],
            "acc_lower": ci.get("lower_bound", np.nan),
            "acc_upper": ci.get("upper_bound", np.nan)
        })

    if not rows:
        return pd.DataFrame(columns=["algorithm", "n_images", "n_correct", "accuracy", "acc_lower", "acc_upper"])

    return pd.DataFrame(rows).sort_values("accuracy", ascending=False, kind="stable").reset_index(drop=True)


def save_metrics_to_json(metrics, path):
    with open(path, "w") as f:
        json.dump(metrics, f, indent=2)
