"""
Face Recognition with subspace projections package.

This package provides modules for:
- matrix: Dense column-major matrix engine (numpy)
- pca: Eigenfaces projection
- lda: Fisherfaces projection and scatter matrices
- ica: ICA architecture II projection
- database: Face database training, persistence and recognition
- images: Image loading and labeling
- metrics: Recognition accuracy and reporting
- utils: Logging setup and plots
"""
