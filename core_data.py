import logging

import numpy as np
import scipy.sparse as sp

from combine_rule import ReplaceRule
from node_data import NodeData
from packed import StageArray, as_packed
from problem import DEFAULT_INFINITY
from quadratic_data import QuadraticData

logger = logging.getLogger(__name__)


def stage_reindex(stage_of, nstag):
    """
    Renumbers indices so that each stage occupies a contiguous range.

    Parameters:
        stage_of (numpy.ndarray): Stage of every external index.
        nstag (int): Number of stages.
    Returns:
        n_in_stage: Count of indices per stage.
        stage_ptr: Start of each stage in internal numbering, length nstag+1.
        ex2in: External -> internal index.
        in2ex: Internal -> external index.
    """
    n_in_stage = np.bincount(stage_of, minlength=nstag)[:nstag].astype(np.int64)
    stage_ptr = np.zeros(nstag + 1, dtype=np.int64)
    stage_ptr[1:] = np.cumsum(n_in_stage)

    # a stable sort places every index at the next free slot of its stage,
    # keeping the original order inside a stage
    in2ex = np.argsort(stage_of, kind="stable").astype(np.int64)
    ex2in = np.empty_like(in2ex)
    ex2in[in2ex] = np.arange(in2ex.shape[0])
    return n_in_stage, stage_ptr, ex2in, in2ex


def _index_array(indices):
    if indices is None:
        return np.zeros(0, dtype=np.int64)
    return np.array(indices, dtype=np.int64)


class CoreData:
    """
    Template (core) problem of a multi-stage stochastic program.

    Rows and columns are given in external indices together with the stage
    of each of them. Internally they are renumbered so that every stage is a
    contiguous range, and one core node per stage holds the stage's data.
    Dense copies of bounds and objective per stage are kept for fast access.
    """

    def __init__(self, nrow, ncol, nstag, col_stage, row_stage, matrix,
                 col_lower=None, col_upper=None, objective=None,
                 row_lower=None, row_upper=None,
                 integer_indices=None, binary_indices=None,
                 infinity=DEFAULT_INFINITY, combine_rule=None,
                 col_names=None, row_names=None, sort_rows=True):
        self.nrow = nrow
        self.ncol = ncol
        self.nstag = nstag
        self.infinity = infinity
        self.combine_rule = combine_rule if combine_rule is not None else ReplaceRule()
        self.integer_indices = _index_array(integer_indices)
        self.binary_indices = _index_array(binary_indices)
        self.col_names = list(col_names) if col_names is not None else None
        self.row_names = list(row_names) if row_names is not None else None
        self.quadratic_data = None

        # store stage maps
        self.col_stage = np.array(col_stage, dtype=np.int64)
        self.row_stage = np.array(row_stage, dtype=np.int64)
        assert self.col_stage.shape[0] == ncol
        assert self.row_stage.shape[0] == nrow

        (self.n_row_in_stage, self.stage_row_ptr,
         self.row_ex2in, self.row_in2ex) = stage_reindex(self.row_stage, nstag)
        (self.n_col_in_stage, self.stage_col_ptr,
         self.col_ex2in, self.col_in2ex) = stage_reindex(self.col_stage, nstag)

        # independent copy of the matrix without duplicates or explicit zeros
        if matrix is not None:
            if sp.issparse(matrix):
                matrix = sp.csr_matrix(matrix, dtype=float, copy=True)
            else:
                matrix = sp.csr_matrix(np.array(matrix, dtype=float))
            assert matrix.shape == (nrow, ncol)
            matrix.sum_duplicates()
            matrix.eliminate_zeros()
            self.nz = matrix.nnz
        else:
            self.nz = 0

        vectors = [as_packed(v) for v in (col_lower, col_upper, objective, row_lower, row_upper)]

        # === CORE NODES AND DENSE STAGE DATA ===
        self.nodes = []
        self.cdclo = []
        self.cdcup = []
        self.cdobj = []
        self.cdrlo = []
        self.cdrup = []
        for t in range(nstag):
            node = NodeData(t, self, matrix, *vectors)
            node.set_core_node()
            if sort_rows:
                # consumers expect rows sorted by internal column index
                node.sort_rows()
            self.nodes.append(node)

            irow, nrow_t = self.get_row_start(t), self.get_num_rows(t)
            icol, ncol_t = self.get_col_start(t), self.get_num_cols(t)
            self.cdclo.append(self._stage_array(ncol_t, icol, 0.0, node.get_col_lower()))
            self.cdcup.append(self._stage_array(ncol_t, icol, infinity, node.get_col_upper()))
            self.cdobj.append(self._stage_array(ncol_t, icol, 0.0, node.get_objective()))
            self.cdrlo.append(self._stage_array(nrow_t, irow, -infinity, node.get_row_lower()))
            self.cdrup.append(self._stage_array(nrow_t, irow, infinity, node.get_row_upper()))

        logger.debug("Core data with %d stages, %d rows, %d columns, %d elements",
                     nstag, nrow, ncol, self.nz)

    @classmethod
    def from_problem(cls, problem, nstag, col_stage, row_stage, **kwargs):
        """Builds the core from an independent copy of a solver-shaped problem."""
        problem = problem.copy()
        return cls(
            problem.get_num_rows(), problem.get_num_cols(), nstag, col_stage, row_stage,
            problem.get_matrix_by_row(),
            col_lower=problem.get_col_lower(),
            col_upper=problem.get_col_upper(),
            objective=problem.get_obj_coefficients(),
            row_lower=problem.get_row_lower(),
            row_upper=problem.get_row_upper(),
            integer_indices=problem.integer_indices,
            binary_indices=problem.binary_indices,
            infinity=problem.get_infinity(),
            col_names=problem.col_names,
            row_names=problem.row_names,
            **kwargs,
        )

    @staticmethod
    def _stage_array(size, offset, default, segment):
        indices, elements = segment
        values = StageArray.filled(size, offset, default)
        values.scatter(indices, elements)
        return values

    # === STAGE GEOMETRY ===

    def get_num_stages(self):
        return self.nstag

    def get_num_rows(self, t=None):
        if t is None:
            return self.nrow
        return int(self.n_row_in_stage[t])

    def get_num_cols(self, t=None):
        if t is None:
            return self.ncol
        return int(self.n_col_in_stage[t])

    def get_row_start(self, t):
        return int(self.stage_row_ptr[t])

    def get_col_start(self, t):
        return int(self.stage_col_ptr[t])

    def get_row_stage(self, i):
        return int(self.row_stage[i])

    def get_col_stage(self, j):
        return int(self.col_stage[j])

    def get_node(self, t):
        return self.nodes[t]

    # === INDEX MAPS ===

    def get_row_external_index(self, i):
        return int(self.row_in2ex[i])

    def get_col_external_index(self, j):
        return int(self.col_in2ex[j])

    def get_row_internal_index(self, i):
        return int(self.row_ex2in[i])

    def get_col_internal_index(self, j):
        return int(self.col_ex2in[j])

    def get_row_name(self, i):
        """Name of internal row i."""
        return self.row_names[self.row_in2ex[i]]

    def get_col_name(self, j):
        """Name of internal column j."""
        return self.col_names[self.col_in2ex[j]]

    # === INTEGER COLUMNS ===

    def _stage_local(self, indices, t):
        indices = indices[self.col_stage[indices] == t]
        return np.sort(self.col_ex2in[indices] - self.get_col_start(t))

    def get_integer_cols_in_stage(self, t):
        """Positions of the integer columns of stage t, relative to the stage start."""
        return self._stage_local(self.integer_indices, t)

    def get_binary_cols_in_stage(self, t):
        return self._stage_local(self.binary_indices, t)

    # === DENSE STAGE DATA ===

    @staticmethod
    def _copy_stage(values, out):
        if out is None:
            return values.values.copy()
        out[:len(values)] = values.values
        return out

    def copy_row_lower(self, t, out=None):
        return self._copy_stage(self.cdrlo[t], out)

    def copy_row_upper(self, t, out=None):
        return self._copy_stage(self.cdrup[t], out)

    def copy_col_lower(self, t, out=None):
        return self._copy_stage(self.cdclo[t], out)

    def copy_col_upper(self, t, out=None):
        return self._copy_stage(self.cdcup[t], out)

    def copy_objective(self, t, out=None):
        return self._copy_stage(self.cdobj[t], out)

    # === QUADRATIC OBJECTIVE ===

    @property
    def has_qdata(self):
        return self.quadratic_data is not None and self.quadratic_data.has_data

    def add_quadratic_objective_to_core(self, table):
        """
        Attaches a quadratic objective to the core.

        Parameters:
            table (QuadraticData or scipy sparse matrix): Quadratic coefficients
                over the external columns. The table is shared, not copied.
        Raises:
            CrossStageQuadraticError: The table couples columns of two stages.
                Stages handled before the failing one keep their data.
        """
        if not isinstance(table, QuadraticData):
            table = QuadraticData.from_matrix(table)
        self.quadratic_data = table

        if not table.has_data:
            logger.warning("No quadratic data found, quadratic objective not added")
            return

        for t in range(self.nstag):
            self.nodes[t].add_quadratic_objective(t, self, table)
            if self.nodes[t].has_qdata:
                logger.info("Stage %d: %d quadratic elements", t,
                            self.nodes[t].quadratic_data.num_elements)
