import numpy as np
import scipy.sparse as sp

# value used for unbounded bounds when the source does not define one
DEFAULT_INFINITY = 1e30


def row_bounds_from_sense(row_sense, rhs, infinity=DEFAULT_INFINITY, ranges=None):
    """
    Converts constraint senses and right-hand sides to row bounds.

    Parameters:
        row_sense (list): Senses 'L', 'G', 'E' (or 'N' for a free row).
        rhs (array-like): Right-hand side per row.
        infinity (float): Value used for missing bounds.
        ranges (dict): Optional row index -> range value (MPS RANGES semantics).
    Returns:
        row_lower, row_upper (numpy.ndarray)
    """
    rhs = np.asarray(rhs, dtype=float)
    m = len(row_sense)
    row_lower = np.full(m, -infinity)
    row_upper = np.full(m, infinity)
    for i, sense in enumerate(row_sense):
        if sense == "L":
            row_upper[i] = rhs[i]
        elif sense == "G":
            row_lower[i] = rhs[i]
        elif sense == "E":
            row_lower[i] = rhs[i]
            row_upper[i] = rhs[i]
        elif sense != "N":
            raise ValueError(f"Unknown constraint sense '{sense}' at row {i}")

    for i, r in (ranges or {}).items():
        sense = row_sense[i]
        if sense == "L":
            row_lower[i] = rhs[i] - abs(r)
        elif sense == "G":
            row_upper[i] = rhs[i] + abs(r)
        elif sense == "E" and r > 0:
            row_upper[i] = rhs[i] + r
        elif sense == "E":
            row_lower[i] = rhs[i] + r
    return row_lower, row_upper


class ProblemData:
    """
    Snapshot of a linear problem as a solver interface exposes it.

    The constraint matrix is kept row ordered (CSR). Row constraints are
    row_lower <= A x <= row_upper.
    """

    def __init__(self, matrix, col_lower, col_upper, objective, row_lower, row_upper,
                 infinity=DEFAULT_INFINITY, integer_indices=(), binary_indices=(),
                 col_names=None, row_names=None, row_sense=None, row_ranges=None):
        self.matrix = sp.csr_matrix(matrix, dtype=float)
        self.col_lower = np.asarray(col_lower, dtype=float)
        self.col_upper = np.asarray(col_upper, dtype=float)
        self.objective = np.asarray(objective, dtype=float)
        self.row_lower = np.asarray(row_lower, dtype=float)
        self.row_upper = np.asarray(row_upper, dtype=float)
        self.infinity = infinity
        self.integer_indices = list(integer_indices)
        self.binary_indices = list(binary_indices)
        self.col_names = col_names
        self.row_names = row_names
        self.row_sense = row_sense
        self.row_ranges = dict(row_ranges) if row_ranges else {}

        m, n = self.matrix.shape
        assert self.col_lower.shape == (n,) and self.col_upper.shape == (n,)
        assert self.objective.shape == (n,)
        assert self.row_lower.shape == (m,) and self.row_upper.shape == (m,)

    def get_num_rows(self):
        return self.matrix.shape[0]

    def get_num_cols(self):
        return self.matrix.shape[1]

    def get_matrix_by_row(self):
        return self.matrix

    def get_col_lower(self):
        return self.col_lower

    def get_col_upper(self):
        return self.col_upper

    def get_obj_coefficients(self):
        return self.objective

    def get_row_lower(self):
        return self.row_lower

    def get_row_upper(self):
        return self.row_upper

    def get_infinity(self):
        return self.infinity

    def copy(self):
        return ProblemData(
            self.matrix.copy(), self.col_lower.copy(), self.col_upper.copy(),
            self.objective.copy(), self.row_lower.copy(), self.row_upper.copy(),
            infinity=self.infinity,
            integer_indices=self.integer_indices,
            binary_indices=self.binary_indices,
            col_names=list(self.col_names) if self.col_names is not None else None,
            row_names=list(self.row_names) if self.row_names is not None else None,
            row_sense=list(self.row_sense) if self.row_sense is not None else None,
            row_ranges=self.row_ranges,
        )
