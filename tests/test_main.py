import json

import pandas as pd
import pytest

import config
import main


@pytest.fixture
def output_dirs(tmp_path, monkeypatch):
    results = tmp_path / "results"
    monkeypatch.setattr(config, "MODELS_PATH", str(results / "models"))
    monkeypatch.setattr(config, "OUTPUT_PATH", str(results / "figures"))
    monkeypatch.setattr(config, "METRICS_PATH", str(results / "metrics"))
    monkeypatch.setattr(config, "LOG_FILE", str(results / "experiment.log"))
    return results


def test_no_action_prints_help(capsys):
    assert main.main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_train_then_recognize(face_dirs, output_dirs, tmp_path):
    train_dir, test_dir = face_dirs
    tset, tdata = tmp_path / "set.txt", tmp_path / "data.bin"

    status = main.main([
        "--train", str(train_dir), "--tset", str(tset), "--tdata", str(tdata),
        "--all", "--lda-truncate", "--seed", "0"
    ])
    assert status == 0
    assert tset.exists() and tdata.exists()

    status = main.main(["--rec", str(test_dir), "--tset", str(tset), "--tdata", str(tdata), "--all"])
    assert status == 0

    report = pd.read_csv(output_dirs / "metrics" / "recognition.csv")
    assert set(report["algorithm"]) == {"PCA", "LDA", "ICA"}
    pca = json.loads((output_dirs / "metrics" / "pca.json").read_text())
    assert pca["accuracy"] == 1.0
    assert (output_dirs / "experiment.log").exists()


def test_plots_are_written(face_dirs, output_dirs, tmp_path):
    train_dir, test_dir = face_dirs
    status = main.main([
        "--train", str(train_dir), "--rec", str(test_dir),
        "--tset", str(tmp_path / "set.txt"), "--tdata", str(tmp_path / "data.bin"),
        "--lda", "--lda-truncate", "--plots"
    ])
    assert status == 0

    figures = output_dirs / "figures"
    for name in ["mean_face.png", "basis_pca.png", "basis_lda.png", "cm_pca.png", "cm_lda.png"]:
        assert (figures / name).exists()


def test_missing_database_reports_error(face_dirs, output_dirs, tmp_path, capsys):
    status = main.main([
        "--rec", str(face_dirs[1]),
        "--tset", str(tmp_path / "missing.txt"), "--tdata", str(tmp_path / "missing.bin")
    ])
    assert status == 1
    assert "Error" in capsys.readouterr().err


def test_empty_training_directory_reports_error(output_dirs, tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    assert main.main(["--train", str(empty), "--tset", str(tmp_path / "s"), "--tdata", str(tmp_path / "d")]) == 1


def test_verbose_prints_configuration(face_dirs, output_dirs, tmp_path, capsys):
    status = main.main([
        "--train", str(face_dirs[0]), "--tset", str(tmp_path / "set.txt"),
        "--tdata", str(tmp_path / "data.bin"), "--verbose"
    ])
    assert status == 0
    out = capsys.readouterr().out
    assert "PROJECT CONFIGURATION" in out
    assert "variance explained: 1.0000" in out
    assert "Singular RCOND" in out
