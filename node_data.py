import numpy as np
import scipy.sparse as sp

from combine_rule import IdentityRule
from packed import PackedVector, as_packed
from quadratic_data import extract_stage_block

# vector segments, stored after the matrix rows in this order
COL_LOWER = 0
COL_UPPER = 1
OBJECTIVE = 2
ROW_LOWER = 3
ROW_UPPER = 4
NUM_ARRAYS = 5

IDENTITY_RULE = IdentityRule()


def _row_ordered(matrix):
    if sp.issparse(matrix):
        if matrix.format == "csr":
            return matrix
        # column ordered (or coordinate) input gets a temporary row ordered copy
        return matrix.tocsr()
    return sp.csr_matrix(matrix)


class NodeData:
    """
    Sparse data of one tree node, restricted to the node's stage.

    All entries are stored in one packed buffer (inds/dels) split into
    segments by `starts`: one segment per matrix row of the stage, then
    column lower, column upper, objective, row lower and row upper bounds.
    Indices are internal indices of the core.

    A core node holds the canonical template data of its stage. Any other
    node holds only the entries it changes, which are combined with the core
    through the core's combine rule.
    """

    def __init__(self, stage, core, matrix=None, col_lower=None, col_upper=None,
                 objective=None, row_lower=None, row_upper=None):
        self.stage = stage
        self.core = core
        self.is_core_node = False
        self.nrow = core.get_num_rows(stage)
        self.ncol = core.get_num_cols(stage)
        self.rowbeg = core.get_row_start(stage)
        self.colbeg = core.get_col_start(stage)
        self.quadratic_data = None
        self._dense_rows = {}

        vectors = [as_packed(v) for v in (col_lower, col_upper, objective, row_lower, row_upper)]

        # upper bound for the number of elements
        nels = 0
        if matrix is not None:
            matrix = _row_ordered(matrix)
            nels += matrix.nnz
        for vec in vectors:
            if vec is not None:
                nels += len(vec)

        inds = np.zeros(nels, dtype=np.int64)
        dels = np.zeros(nels)
        self.starts = np.zeros(self.nrow + 1 + NUM_ARRAYS, dtype=np.int64)

        # offset_dst always points to the next free spot
        offset_dst = 0

        # === MATRIX ROWS ===
        self.has_matrix = matrix is not None and matrix.nnz > 0
        if self.has_matrix:
            indptr = matrix.indptr
            for i in range(self.nrow):
                isrc = core.get_row_external_index(self.rowbeg + i)
                src_start, src_end = indptr[isrc], indptr[isrc + 1]
                length = src_end - src_start
                if length:
                    inds[offset_dst:offset_dst + length] = matrix.indices[src_start:src_end]
                    dels[offset_dst:offset_dst + length] = matrix.data[src_start:src_end]
                    offset_dst += length
                self.starts[i + 1] = offset_dst
            inds[:offset_dst] = core.col_ex2in[inds[:offset_dst]]

        # === BOUNDS AND OBJECTIVE ===
        stage_maps = [
            (core.col_stage, core.col_ex2in),  # column lower
            (core.col_stage, core.col_ex2in),  # column upper
            (core.col_stage, core.col_ex2in),  # objective
            (core.row_stage, core.row_ex2in),  # row lower
            (core.row_stage, core.row_ex2in),  # row upper
        ]
        for k, (vec, (index_stage, ex2in)) in enumerate(zip(vectors, stage_maps)):
            if vec is not None and len(vec):
                keep = index_stage[vec.indices] == stage
                count = int(np.count_nonzero(keep))
                inds[offset_dst:offset_dst + count] = ex2in[vec.indices[keep]]
                dels[offset_dst:offset_dst + count] = vec.elements[keep]
                offset_dst += count
            self.starts[self.nrow + 1 + k] = offset_dst

        assert offset_dst <= nels
        assert np.all(np.diff(self.starts) >= 0)

        # return excess memory
        self.inds = inds[:offset_dst].copy()
        self.dels = dels[:offset_dst].copy()

    def __repr__(self):
        kind = "core" if self.is_core_node else "delta"
        return f"NodeData(stage={self.stage}, {kind}, elements={self.num_elements})"

    @property
    def num_elements(self):
        return int(self.starts[-1])

    def set_core_node(self):
        self.is_core_node = True

    @property
    def combine_rule(self):
        if self.is_core_node:
            return IDENTITY_RULE
        return self.core.combine_rule

    # === MATRIX ROW ACCESS ===
    # rows are addressed by internal row index; returned arrays are views

    def _row_bounds(self, i):
        k = i - self.rowbeg
        assert 0 <= k < self.nrow, f"row {i} is not in stage {self.stage}"
        return self.starts[k], self.starts[k + 1]

    def get_row_length(self, i):
        lo, hi = self._row_bounds(i)
        return int(hi - lo)

    def get_row_indices(self, i):
        lo, hi = self._row_bounds(i)
        return self.inds[lo:hi]

    def get_row_elements(self, i):
        lo, hi = self._row_bounds(i)
        return self.dels[lo:hi]

    def get_row(self, i):
        return PackedVector(self.get_row_indices(i), self.get_row_elements(i))

    def sort_rows(self):
        """Sorts every matrix row of the node by increasing column index."""
        for k in range(self.nrow):
            lo, hi = self.starts[k], self.starts[k + 1]
            if hi - lo > 1:
                order = np.argsort(self.inds[lo:hi], kind="stable")
                self.inds[lo:hi] = self.inds[lo:hi][order]
                self.dels[lo:hi] = self.dels[lo:hi][order]

    # === VECTOR SEGMENTS ===

    def _segment(self, k):
        lo = self.starts[self.nrow + k]
        hi = self.starts[self.nrow + k + 1]
        return self.inds[lo:hi], self.dels[lo:hi]

    def get_col_lower(self):
        return self._segment(COL_LOWER)

    def get_col_upper(self):
        return self._segment(COL_UPPER)

    def get_objective(self):
        return self._segment(OBJECTIVE)

    def get_row_lower(self):
        return self._segment(ROW_LOWER)

    def get_row_upper(self):
        return self._segment(ROW_UPPER)

    # === COMBINED VALUES ===
    # defaults of the stage are copied from the core first, then the delta
    # of this node is applied through the combine rule

    def combine_with_core_double_array(self, out, indices, elements, offset):
        return self.combine_rule.process_array(out, offset, indices, elements)

    def copy_row_lower(self, out=None):
        t = self.stage
        out = self.core.copy_row_lower(t, out)
        indices, elements = self.get_row_lower()
        return self.combine_with_core_double_array(out, indices, elements, self.core.get_row_start(t))

    def copy_row_upper(self, out=None):
        t = self.stage
        out = self.core.copy_row_upper(t, out)
        indices, elements = self.get_row_upper()
        return self.combine_with_core_double_array(out, indices, elements, self.core.get_row_start(t))

    def copy_col_lower(self, out=None):
        t = self.stage
        out = self.core.copy_col_lower(t, out)
        indices, elements = self.get_col_lower()
        return self.combine_with_core_double_array(out, indices, elements, self.core.get_col_start(t))

    def copy_col_upper(self, out=None):
        t = self.stage
        out = self.core.copy_col_upper(t, out)
        indices, elements = self.get_col_upper()
        return self.combine_with_core_double_array(out, indices, elements, self.core.get_col_start(t))

    def copy_objective(self, out=None):
        t = self.stage
        out = self.core.copy_objective(t, out)
        indices, elements = self.get_objective()
        return self.combine_with_core_double_array(out, indices, elements, self.core.get_col_start(t))

    def combine_with_dense_core_row(self, dense_row, indices, elements):
        """
        Combines a sparse row with a dense core row.

        Parameters:
            dense_row (numpy.ndarray): Dense core row of template column length,
                usually from get_dense_row. It is overwritten.
            indices (array-like): Internal column indices of the node's row.
            elements (array-like): Values of the node's row.
        Returns:
            PackedVector with the nonzeros of the combined row.
        """
        return self.combine_rule.process_dense_row(dense_row, indices, elements)

    def combine_with_core_row(self, core_row, node_row):
        return self.combine_rule.process_sparse(core_row, node_row)

    def get_dense_row(self, i):
        """
        Returns the dense form of internal row i.

        The array is cached per row and the same object is returned on every
        call. Its contents are regenerated each time since combine passes
        write into it.
        """
        dense_size = self.core.get_num_cols()
        dv = self._dense_rows.get(i)
        if dv is None:
            dv = np.zeros(dense_size)
            self._dense_rows[i] = dv
        else:
            dv.fill(0.0)
        dv[self.get_row_indices(i)] = self.get_row_elements(i)
        return dv

    # === QUADRATIC OBJECTIVE ===

    @property
    def has_qdata(self):
        return self.quadratic_data is not None

    def add_quadratic_objective(self, stage, core, table):
        """
        Stores a deep copy of the stage's block of a quadratic table.

        Raises CrossStageQuadraticError if the block references a column of
        another stage; the node then has no quadratic data.
        """
        assert table.has_data
        # only core nodes have quadratic data
        assert self.is_core_node
        self.quadratic_data = None
        self.quadratic_data = extract_stage_block(core, stage, table)
