# config.py
import os

RANDOM_STATE = 42

# None keeps n_images - 1 components (the last one spans the null direction
# left by mean subtraction)
PCA_COMPONENTS = None

# Classical Fisherface limits: PCA cut to (n - c), Fisher basis cut to (c - 1)
LDA_TRUNCATE = False

ICA_MAX_ITER = 1000
ICA_TOL = 1e-6
ICA_WHITEN_SCALE = 2.0
ICA_FUN = 'logcosh'

# Reciprocal condition number below which a matrix is treated as singular
SINGULAR_RCOND = 1e-13

IMAGE_EXTENSIONS = ('.pgm', '.ppm', '.pnm', '.png', '.bmp', '.jpg', '.jpeg', '.tif', '.tiff')

BOOTSTRAP_ITERATIONS = 1000
CONFIDENCE_LEVEL = 0.95

PLOT_DPI = 150
PLOT_FIGSIZE_SMALL = (8, 6)
PLOT_FIGSIZE_MEDIUM = (12, 8)
PLOT_COLORMAP = 'gray'

N_EIGENFACES_DISPLAY = 12

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
MODELS_PATH = os.path.join(BASE_DIR, "results", "models")
OUTPUT_PATH = os.path.join(BASE_DIR, "results", "figures")
METRICS_PATH = os.path.join(BASE_DIR, "results", "metrics")

TRAINING_SET_FILE = os.path.join(MODELS_PATH, "train_set.txt")
TRAINING_DATA_FILE = os.path.join(MODELS_PATH, "train_data.bin")

LOG_FILE = os.path.join(BASE_DIR, "results", "experiment.log")
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def ensure_output_dirs():
    for path in [MODELS_PATH, OUTPUT_PATH, METRICS_PATH]:
        os.makedirs(path, exist_ok=True)


def get_config_summary():
    return {
        'PCA': {
            'Components': PCA_COMPONENTS if PCA_COMPONENTS is not None else 'n_images - 1'
        },
        'LDA': {
            'Truncate': LDA_TRUNCATE
        },
        'ICA': {
            'Max Iterations': ICA_MAX_ITER,
            'Tolerance': ICA_TOL,
            'Whitening Scale': ICA_WHITEN_SCALE,
            'Contrast Function': ICA_FUN
        },
        'Numerics': {
            'Singular RCOND': SINGULAR_RCOND,
            'Random State': RANDOM_STATE
        },
        'Paths': {
            'Training Set': TRAINING_SET_FILE,
            'Training Data': TRAINING_DATA_FILE
        }
    }


def print_config():
    print("PROJECT CONFIGURATION")
    summary = get_config_summary()
    for section, params in summary.items():
        print(f"\n{section}:")
        for key, value in params.items():
            print(f"  {key}: {value}")
