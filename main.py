# main.py
import argparse
import os
import sys

import pandas as pd

import config
from facespace.database import FaceDatabase
from facespace.errors import FaceRecError, SingularMatrixError
from facespace.metrics import compare_algorithms, compute_recognition_metrics, save_metrics_to_json
from facespace.utils import plot_confusion_matrix, plot_eigenfaces, plot_mean_face, setup_logging


def build_parser():
    parser = argparse.ArgumentParser(description='Face recognition with PCA, LDA and ICA')
    parser.add_argument('--train', metavar='DIR', help='train a database on the images in DIR')
    parser.add_argument('--rec', metavar='DIR', help='recognize the images in DIR')
    parser.add_argument('--tset', default=config.TRAINING_SET_FILE, help='training set entries file')
    parser.add_argument('--tdata', default=config.TRAINING_DATA_FILE, help='training data file')
    parser.add_argument('--lda', action='store_true', help='also train/evaluate LDA')
    parser.add_argument('--ica', action='store_true', help='also train/evaluate ICA')
    parser.add_argument('--all', action='store_true', help='same as --lda --ica')
    parser.add_argument('--lda-truncate', action='store_true',
                        help='limit LDA to n - c PCA components and c - 1 Fisher vectors')
    parser.add_argument('--components', type=int, default=None, help='PCA components to keep')
    parser.add_argument('--seed', type=int, default=config.RANDOM_STATE, help='ICA random seed')
    parser.add_argument('--plots', action='store_true', help='save mean face, basis and confusion plots')
    parser.add_argument('--verbose', action='store_true', help='debug logging')
    return parser


def train(args, db):
    print("\n1. TRAINING")

    use_lda = args.lda or args.all
    use_ica = args.ica or args.all

    db.train(args.train, use_lda=use_lda, use_ica=use_ica,
             num_components=args.components,
             lda_truncate=args.lda_truncate or None,
             random_state=args.seed)
    db.save(args.tset, args.tdata)

    print(f"- {db.num_images} images, {db.num_classes} classes, {db.num_dimensions} pixels")
    print(f"- PCA: {db.W_pca_tr.rows} components, variance explained: {db.variance_explained:.4f}")
    if db.lda:
        print(f"- LDA: {db.W_lda_tr.rows} components")
    if db.ica:
        print(f"- ICA: {db.W_ica_tr.rows} components")
    print(f"Database saved: {args.tset}, {args.tdata}")

    if args.plots and db.image_shape is not None:
        h, w = db.image_shape
        plot_mean_face(db, h, w)
        for algorithm, _, _ in db.bases():
            plot_eigenfaces(db, h, w, algorithm=algorithm)
        print(f"Plots saved in {config.OUTPUT_PATH}")


def recognize(args, db):
    print("\n2. RECOGNITION")

    if not db.is_trained:
        db.load(args.tset, args.tdata)

    report = db.recognize(args.rec)
    report.to_csv(os.path.join(config.METRICS_PATH, "recognition.csv"), index=False)

    wanted = {"PCA"}
    if args.lda or args.all:
        wanted.add("LDA")
    if args.ica or args.all:
        wanted.add("ICA")
    missing = wanted - set(report["algorithm"].unique())
    if missing:
        print(f"Warning: database has no {', '.join(sorted(missing))} model")
    report = report[report["algorithm"].isin(wanted)]

    for image, rows in report.groupby("image", sort=False):
        matches = ", ".join(
            f"{r.algorithm}: {r.match_name}" + ("" if pd.isna(r.correct) else (" ok" if r.correct else " MISS"))
            for r in rows.itertuples()
        )
        print(f"{image} -> {matches}")

    summary = compare_algorithms(report)
    print("\nAccuracy:")
    print(summary.to_string(index=False))

    for algorithm in summary["algorithm"]:
        metrics = compute_recognition_metrics(report, algorithm)
        save_metrics_to_json(metrics, os.path.join(config.METRICS_PATH, f"{algorithm.lower()}.json"))
        if args.plots and metrics["n_images"] > 0:
            plot_confusion_matrix(metrics)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.train and not args.rec:
        parser.print_help()
        return 1

    config.ensure_output_dirs()
    setup_logging('DEBUG' if args.verbose else config.LOG_LEVEL, config.LOG_FILE)
    if args.verbose:
        config.print_config()

    db = FaceDatabase()
    try:
        if args.train:
            train(args, db)
        if args.rec:
            recognize(args, db)
    except SingularMatrixError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.lda or args.all:
            print("Hint: retry with --lda-truncate to keep the within-class scatter invertible", file=sys.stderr)
        return 1
    except FaceRecError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
