# facespace/utils.py
import logging
import os
import sys

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

import config


def setup_logging(level=None, log_file=None):
    """Send package logs to stdout and, when log_file is set, to that file."""
    if level is None:
        level = config.LOG_LEVEL

    logger = logging.getLogger("facespace")
    logger.setLevel(level)
    formatter = logging.Formatter(config.LOG_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def plot_mean_face(db, h, w, output_path=None):
    """Visualizza la faccia media del training set."""
    output_path = output_path or config.OUTPUT_PATH
    plt.figure(figsize=(4, 4))
    plt.imshow(db.mean_face.data[:, 0].reshape(h, w), cmap=config.PLOT_COLORMAP)
    plt.title("Mean Face")
    plt.axis('off')
    path = os.path.join(output_path, "mean_face.png")
    plt.savefig(path, bbox_inches='tight')
    plt.close()
    return path


def plot_eigenfaces(db, h, w, algorithm="PCA", n_top=None, output_path=None):
    """Visualizza le prime righe della matrice di proiezione come immagini."""
    output_path = output_path or config.OUTPUT_PATH
    n_top = n_top or config.N_EIGENFACES_DISPLAY
    W_tr = dict((name, W) for name, W, _ in db.bases())[algorithm]
    n_top = min(n_top, W_tr.rows)
    n_cols = 4
    n_rows = max(1, int(np.ceil(n_top / n_cols)))

    plt.figure(figsize=config.PLOT_FIGSIZE_MEDIUM)
    for i in range(n_top):
        plt.subplot(n_rows, n_cols, i + 1)
        plt.imshow(W_tr.data[i].reshape(h, w), cmap=config.PLOT_COLORMAP)
        plt.title(f"{algorithm} {i + 1}")
        plt.axis('off')
    plt.suptitle(f"Leading {algorithm} basis vectors")
    path = os.path.join(output_path, f"basis_{algorithm.lower()}.png")
    plt.savefig(path, bbox_inches='tight', dpi=config.PLOT_DPI)
    plt.close()
    return path


def plot_confusion_matrix(metrics, output_path=None):
    """Visualizza la matrice di confusione con heatmap."""
    output_path = output_path or config.OUTPUT_PATH
    algorithm = metrics["algorithm"]
    labels = metrics["labels"]

    plt.figure(figsize=config.PLOT_FIGSIZE_SMALL)
    sns.heatmap(np.array(metrics["confusion_matrix"]), annot=len(labels) <= 20, fmt='d', cmap='Blues',
                xticklabels=labels, yticklabels=labels)
    plt.title(f"Confusion Matrix: {algorithm}")
    plt.ylabel('True Class')
    plt.xlabel('Predicted Class')
    path = os.path.join(output_path, f"cm_{algorithm.lower()}.png")
    plt.savefig(path, bbox_inches='tight')
    plt.close()
    return path
