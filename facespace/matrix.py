"""
This module implements the dense matrix engine used by every algorithm in
the package.

A Matrix owns a column-major (Fortran ordered) float64 numpy array. It provides:
- Construction (zeros, identity, copies) and explicit release
- Elementwise operations that mutate the receiver in place
- Elementwise and matrix products that allocate new results
- Decompositions: eigen, inverse (LU), determinant and cofactors (recursive)
- Text and binary serialization
"""

import logging

import numpy as np

import config
from facespace.errors import DatabaseIOError, DimensionMismatchError, MatrixReleasedError, SingularMatrixError

logger = logging.getLogger(__name__)

ELEMENT_DTYPE = np.dtype(np.float64)
HEADER_DTYPE = np.dtype(np.intc)

# Recursive cofactor expansion costs O(n!), keep it to small matrices
COFACTOR_MAX_ORDER = 10


class Matrix:
    """
    Dense matrix of float64 values stored in column-major order.

    Every method that returns a Matrix allocates a new one. Methods that
    return None mutate the receiver in place.

    Attributes:
        rows: Number of rows
        cols: Number of columns
    """

    def __init__(self, rows, cols):
        """Allocate a zero-filled rows x cols matrix."""
        if rows < 0 or cols < 0:
            raise DimensionMismatchError(f"invalid matrix size {rows}x{cols}")
        self.rows = int(rows)
        self.cols = int(cols)
        self._data = np.zeros((self.rows, self.cols), dtype=ELEMENT_DTYPE, order='F')

    # construction

    @classmethod
    def zeros(cls, rows, cols):
        return cls(rows, cols)

    @classmethod
    def initialize(cls, rows, cols):
        return cls(rows, cols)

    @classmethod
    def identity(cls, rows):
        M = cls(rows, rows)
        np.fill_diagonal(M._data, 1.0)
        return M

    @classmethod
    def from_array(cls, array):
        """
        Build a matrix from any array-like value.

        One-dimensional input becomes a column vector. The data is always
        copied, so the new matrix never aliases the caller's array.

        Args:
            array: Nested sequence or numpy array with at most two dimensions

        Returns:
            Matrix: New matrix holding a copy of the values
        """
        data = np.array(array, dtype=ELEMENT_DTYPE)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        elif data.ndim == 0:
            data = data.reshape(1, 1)
        elif data.ndim > 2:
            raise DimensionMismatchError(f"cannot build a matrix from a {data.ndim}-d array")

        M = cls.__new__(cls)
        M.rows, M.cols = data.shape
        M._data = np.asfortranarray(data)
        return M

    def copy(self):
        return Matrix.from_array(self.data)

    def release(self):
        """Drop the backing storage; any further use raises MatrixReleasedError."""
        self._data = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()
        return False

    # element access

    @property
    def data(self):
        if self._data is None:
            raise MatrixReleasedError("matrix storage has been released")
        return self._data

    @property
    def released(self):
        return self._data is None

    @property
    def shape(self):
        return (self.rows, self.cols)

    @property
    def size(self):
        return self.rows * self.cols

    def __getitem__(self, index):
        i, j = index
        return float(self.data[i, j])

    def __setitem__(self, index, value):
        i, j = index
        self.data[i, j] = value

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self.data
        return self.data.astype(dtype)

    def to_array(self):
        return self.data.copy(order='F')

    def __eq__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and np.array_equal(self.data, other.data)

    __hash__ = None

    def __repr__(self):
        if self.released:
            return f"Matrix({self.rows}x{self.cols}, released)"
        return f"Matrix({self.rows}x{self.cols})"

    # shape checks

    def _require_same_shape(self, other, op):
        if self.shape != other.shape:
            raise DimensionMismatchError(
                f"{op}: {self.rows}x{self.cols} and {other.rows}x{other.cols} differ in shape"
            )

    def _require_square(self, op):
        if self.rows != self.cols:
            raise DimensionMismatchError(f"{op} requires a square matrix, got {self.rows}x{self.cols}")

    # elementwise, in place

    def negate(self):
        np.negative(self.data, out=self.data)

    def exp(self):
        with np.errstate(over='ignore'):
            np.exp(self.data, out=self.data)

    def sqrt(self):
        # negative entries become NaN
        with np.errstate(invalid='ignore'):
            np.sqrt(self.data, out=self.data)

    def acos(self):
        # entries outside [-1, 1] become NaN
        with np.errstate(invalid='ignore'):
            np.arccos(self.data, out=self.data)

    def pow(self, exponent):
        with np.errstate(invalid='ignore', divide='ignore', over='ignore'):
            np.power(self.data, exponent, out=self.data)

    def mult(self, x):
        data = self.data
        data *= x

    def divide_by(self, x):
        with np.errstate(divide='ignore', invalid='ignore'):
            data = self.data
            data /= x

    def add_scalar(self, x):
        data = self.data
        data += x

    def rdivide(self, x):
        """Replace every element e with x / e."""
        with np.errstate(divide='ignore', invalid='ignore'):
            np.divide(x, self.data, out=self.data)

    def truncate(self):
        np.trunc(self.data, out=self.data)

    def normalize(self):
        """Min-max normalize every element into [0, 1]."""
        data = self.data
        if data.size == 0:
            return
        lo, hi = data.min(), data.max()
        with np.errstate(divide='ignore', invalid='ignore'):
            data -= lo
            data /= (hi - lo)

    # elementwise, binary

    def add(self, other):
        self._require_same_shape(other, 'add')
        data = self.data
        data += other.data

    def subtract(self, other):
        self._require_same_shape(other, 'subtract')
        data = self.data
        data -= other.data

    def dot_add(self, other):
        self._require_same_shape(other, 'dot_add')
        return Matrix.from_array(self.data + other.data)

    def dot_subtract(self, other):
        self._require_same_shape(other, 'dot_subtract')
        return Matrix.from_array(self.data - other.data)

    def dot_divide(self, other):
        self._require_same_shape(other, 'dot_divide')
        with np.errstate(divide='ignore', invalid='ignore'):
            return Matrix.from_array(self.data / other.data)

    # products and reductions

    def product(self, other):
        """
        Multiply self by other.

        Args:
            other: Right operand, other.rows must equal self.cols

        Returns:
            Matrix: New (self.rows x other.cols) matrix
        """
        if self.cols != other.rows:
            raise DimensionMismatchError(
                f"product: {self.rows}x{self.cols} times {other.rows}x{other.cols}"
            )
        return Matrix.from_array(np.dot(self.data, other.data))

    __matmul__ = product

    def transpose(self):
        return Matrix.from_array(self.data.T)

    def mean_column(self):
        """Average of the columns as a (rows x 1) vector."""
        if self.cols == 0:
            raise DimensionMismatchError("mean_column of a matrix without columns")
        return Matrix.from_array(self.data.mean(axis=1))

    def subtract_columns(self, a):
        """Subtract the column vector a from every column, in place."""
        if a.rows != self.rows or a.cols != 1:
            raise DimensionMismatchError(
                f"subtract_columns: expected a {self.rows}x1 vector, got {a.rows}x{a.cols}"
            )
        data = self.data
        data -= a.data

    def sum_rows(self):
        return Matrix.from_array(self.data.sum(axis=1))

    def sum_columns(self):
        return Matrix.from_array(self.data.sum(axis=0).reshape(1, -1))

    def mean_columns(self):
        if self.rows == 0:
            raise DimensionMismatchError("mean_columns of a matrix without rows")
        return Matrix.from_array(self.data.mean(axis=0).reshape(1, -1))

    def trace(self):
        self._require_square('trace')
        return float(np.trace(self.data))

    def norm(self):
        """Frobenius norm."""
        return float(np.sqrt(np.sum(self.data * self.data)))

    def column(self, j):
        return Matrix.from_array(self.data[:, j])

    def copy_columns(self, start, end):
        """Copy columns [start, end) into a new matrix."""
        if not 0 <= start <= end <= self.cols:
            raise DimensionMismatchError(f"copy_columns: [{start}, {end}) out of range for {self.cols} columns")
        return Matrix.from_array(self.data[:, start:end])

    def copy_rows(self, start, end):
        if not 0 <= start <= end <= self.rows:
            raise DimensionMismatchError(f"copy_rows: [{start}, {end}) out of range for {self.rows} rows")
        return Matrix.from_array(self.data[start:end, :])

    # rearrangement

    def find_nonzeros(self):
        """
        Collect the 1-based row index of every non-zero element.

        Elements are scanned row by row. The result has one slot per element
        of the matrix; unused trailing slots stay zero.

        Returns:
            Matrix: (rows * cols x 1) vector of row indices
        """
        R = Matrix(self.size, 1)
        row_idx, _ = np.nonzero(self.data)
        R.data[:len(row_idx), 0] = row_idx + 1
        return R

    def reorder_columns(self, order):
        """
        Rearrange columns so that column j of the result is column order[0, j] of self.

        Args:
            order: (1 x cols) matrix of zero-based column indices

        Returns:
            Matrix: New matrix with the reordered columns
        """
        if order.rows != 1 or order.cols != self.cols:
            raise DimensionMismatchError(
                f"reorder_columns: expected a 1x{self.cols} index vector, got {order.rows}x{order.cols}"
            )
        idx = order.data[0].astype(int)
        if np.any(idx < 0) or np.any(idx >= self.cols):
            raise DimensionMismatchError("reorder_columns: column index out of range")
        return Matrix.from_array(self.data[:, idx])

    def reshape(self, rows, cols):
        """Refill a rows x cols matrix with the elements in row-major traversal order."""
        if rows * cols != self.size:
            raise DimensionMismatchError(f"reshape: cannot turn {self.rows}x{self.cols} into {rows}x{cols}")
        return Matrix.from_array(np.reshape(self.data, (rows, cols), order='C'))

    def flip_columns(self):
        """Reverse the column order, in place."""
        self.data[:, :] = self.data[:, ::-1].copy()

    # decompositions

    def inverse(self):
        """
        Invert a square matrix via LU factorization.

        Raises:
            DimensionMismatchError: If the matrix is not square
            SingularMatrixError: If the factorization hits a zero pivot or the
                reciprocal condition number is below config.SINGULAR_RCOND
        """
        self._require_square('inverse')
        data = self.data
        if self.rows == 0:
            return Matrix(0, 0)

        with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
            try:
                inv = np.linalg.inv(data)
                cond = np.linalg.cond(data)
            except np.linalg.LinAlgError as e:
                raise SingularMatrixError(f"cannot invert {self.rows}x{self.cols} matrix: {e}") from e
            rcond = 1.0 / cond

        if not np.all(np.isfinite(inv)) or not np.isfinite(rcond) or rcond < config.SINGULAR_RCOND:
            raise SingularMatrixError(
                f"{self.rows}x{self.cols} matrix is singular to working precision (rcond={rcond:.3e})"
            )
        return Matrix.from_array(inv)

    def determinant(self):
        """
        Determinant by recursive cofactor expansion along the first row.

        The cost grows factorially with the order, so matrices larger than
        COFACTOR_MAX_ORDER are rejected.
        """
        self._require_square('determinant')
        _check_cofactor_order(self.rows)
        return _cofactor_determinant(self.data)

    def cofactor(self):
        """
        Signed minors of every element, stored transposed.

        Element (j, i) of the result is (-1)^(i + j) times the determinant of
        self with row i and column j removed.
        """
        self._require_square('cofactor')
        _check_cofactor_order(self.rows)
        n = self.rows
        data = self.data
        R = Matrix(n, n)
        for i in range(n):
            without_row = np.delete(data, i, axis=0)
            for j in range(n):
                minor = np.delete(without_row, j, axis=1)
                R.data[j, i] = (-1) ** (i + j) * _cofactor_determinant(minor)
        return R

    def eigen(self):
        """
        Real eigenvalues and right eigenvectors of a square matrix.

        Eigenvalues are not sorted. The i-th eigenvalue belongs to the i-th
        eigenvector column. Only the real parts of the eigenvalues are kept.
        A complex conjugate pair in columns j, j + 1 is stored as LAPACK
        dgeev does: column j holds the real part of the eigenvector of the
        eigenvalue with positive imaginary part, column j + 1 its imaginary
        part.

        Returns:
            tuple: (eigenvalues as n x 1, eigenvectors as n x n)
        """
        self._require_square('eigen')
        try:
            evals, evecs = np.linalg.eig(self.data)
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(f"eigendecomposition failed: {e}") from e

        if np.any(np.abs(evals.imag) > 0):
            logger.debug("Discarding imaginary parts of %d complex eigenvalues", int(np.count_nonzero(evals.imag)))

        vecs = evecs.real.copy()
        j = 0
        while j < self.rows:
            if evals[j].imag > 0 and j + 1 < self.rows:
                vecs[:, j + 1] = evecs[:, j].imag
                j += 2
            else:
                j += 1

        return Matrix.from_array(evals.real), Matrix.from_array(vecs)

    def sqrtm(self):
        """Principal square root V * sqrt(D) * V^-1."""
        self._require_square('sqrtm')
        data = self.data
        if np.allclose(data, data.T):
            w, v = np.linalg.eigh(data)
            with np.errstate(invalid='ignore'):
                root = np.sqrt(w)
            return Matrix.from_array((v * root) @ v.T)

        evals, evecs = self.eigen()
        evals.sqrt()
        scaled = Matrix.from_array(evecs.data * evals.data.T)
        return scaled.product(evecs.inverse())

    def covariance(self):
        """Covariance of the columns (variables) over the rows (observations)."""
        if self.rows < 2:
            raise DimensionMismatchError("covariance needs at least two observations (rows)")
        centered = self.data - self.data.mean(axis=0)
        return Matrix.from_array(centered.T @ centered / (self.rows - 1))

    # serialization

    def write_text(self, stream):
        """Write a "rows cols" header and one line per row to a text stream."""
        stream.write(f"{self.rows} {self.cols}\n")
        for row in self.data:
            stream.write(" ".join(format(v, '.17g') for v in row))
            stream.write("\n")

    @classmethod
    def read_text(cls, stream):
        header = stream.readline().split()
        if len(header) != 2:
            raise DatabaseIOError("missing or malformed matrix header")
        try:
            rows, cols = int(header[0]), int(header[1])
            M = cls(rows, cols)
            for i in range(rows):
                values = stream.readline().split()
                if len(values) != cols:
                    raise DatabaseIOError(f"row {i}: expected {cols} values, found {len(values)}")
                M.data[i, :] = [float(v) for v in values]
        except ValueError as e:
            raise DatabaseIOError(f"malformed matrix text: {e}") from e
        return M

    def write_binary(self, stream):
        """Write native int rows, int cols, then the column-major float64 buffer."""
        stream.write(np.array([self.rows, self.cols], dtype=HEADER_DTYPE).tobytes())
        stream.write(self.data.tobytes(order='F'))

    @classmethod
    def read_binary(cls, stream):
        header_size = 2 * HEADER_DTYPE.itemsize
        header = stream.read(header_size)
        if len(header) != header_size:
            raise DatabaseIOError("truncated matrix header")

        rows, cols = (int(v) for v in np.frombuffer(header, dtype=HEADER_DTYPE))
        if rows < 0 or cols < 0:
            raise DatabaseIOError(f"corrupt matrix header {rows}x{cols}")

        n_bytes = rows * cols * ELEMENT_DTYPE.itemsize
        buffer = stream.read(n_bytes)
        if len(buffer) != n_bytes:
            raise DatabaseIOError(f"truncated matrix data: expected {n_bytes} bytes, found {len(buffer)}")

        data = np.frombuffer(buffer, dtype=ELEMENT_DTYPE).reshape((rows, cols), order='F')
        return cls.from_array(data)


def _check_cofactor_order(n):
    if n > COFACTOR_MAX_ORDER:
        raise DimensionMismatchError(
            f"cofactor expansion limited to order {COFACTOR_MAX_ORDER}, got {n}"
        )


def _cofactor_determinant(a):
    n = a.shape[0]
    if n == 0:
        return 1.0
    if n == 1:
        return float(a[0, 0])
    if n == 2:
        return float(a[0, 0] * a[1, 1] - a[1, 0] * a[0, 1])

    det = 0.0
    rest = a[1:, :]
    for j in range(n):
        minor = np.delete(rest, j, axis=1)
        det += (-1) ** j * a[0, j] * _cofactor_determinant(minor)
    return float(det)
