import logging

import numpy as np
import scipy.sparse as sp

logger = logging.getLogger(__name__)


class CrossStageQuadraticError(ValueError):
    """
    Quadratic objective data couples columns of two different stages.

    Attributes:
        stage: Stage whose block was being extracted.
        column: External index of the column that belongs to another stage.
        column_stage: Stage of that column.
    """

    def __init__(self, stage, column, column_stage):
        self.stage = stage
        self.column = column
        self.column_stage = column_stage
        super().__init__(
            f"Quadratic data for stage {stage} includes column {column} "
            f"from stage {column_stage}"
        )


class QuadraticData:
    """
    Compressed-column quadratic objective table.

    Column j holds its entries in indices/elements[starts[j]:starts[j+1]],
    where indices are row (column-of-Q) indices. Without copy=True the
    arrays passed in are shared, not copied.
    """

    def __init__(self, ncols, starts, indices, elements, copy=False):
        self.ncols = ncols
        convert = np.array if copy else np.asarray
        self.starts = convert(starts, dtype=np.int64)
        self.indices = convert(indices, dtype=np.int64)
        self.elements = convert(elements, dtype=float)
        assert self.starts.shape[0] == ncols + 1

    @classmethod
    def from_matrix(cls, matrix):
        csc = sp.csc_matrix(matrix)
        return cls(csc.shape[1], csc.indptr, csc.indices, csc.data)

    @property
    def num_elements(self):
        return int(self.starts[-1]) if self.ncols else 0

    @property
    def has_data(self):
        return self.num_elements > 0

    def deep_copy(self):
        return QuadraticData(self.ncols, self.starts, self.indices, self.elements,
                             copy=True)

    def to_csc(self):
        n = self.num_elements
        return sp.csc_matrix(
            (self.elements[:n], self.indices[:n], self.starts),
            shape=(self.ncols, self.ncols),
        )


def extract_stage_block(core, stage, table):
    """
    Extracts the quadratic block of one stage in internal column ordering.

    Parameters:
        core (CoreData): Template problem providing stages and reindexing.
        stage (int): Stage to extract.
        table (QuadraticData): Table over the full external column range.
    Returns:
        QuadraticData deep copy indexed by internal columns, or None if the
        stage has no quadratic entries.
    Raises:
        CrossStageQuadraticError: An entry of a stage column sits in a row
        belonging to another stage.
    """
    ncols = core.get_num_cols()
    strts = table.starts
    ind = table.indices
    els = table.elements

    stage_cols = np.flatnonzero(core.col_stage == stage)

    # count entries of each stage column at its new position
    nqstarts = np.zeros(ncols + 1, dtype=np.int64)
    for j in stage_cols:
        icol = core.get_col_internal_index(j)
        nqstarts[icol + 1] = strts[j + 1] - strts[j]
    nqstarts = np.cumsum(nqstarts)

    nqels = int(nqstarts[-1])
    if nqels == 0:
        return None

    nqindx = np.zeros(nqels, dtype=np.int64)
    nqdels = np.zeros(nqels)
    for j in stage_cols:
        icol = core.get_col_internal_index(j)
        ilocal = 0
        for jj in range(strts[j], strts[j + 1]):
            row = int(ind[jj])
            if core.get_col_stage(row) != stage:
                raise CrossStageQuadraticError(stage, row, int(core.get_col_stage(row)))
            ii = nqstarts[icol] + ilocal
            nqindx[ii] = core.get_col_internal_index(row)
            nqdels[ii] = els[jj]
            ilocal += 1
        assert ilocal == nqstarts[icol + 1] - nqstarts[icol]

    logger.debug("Stage %d quadratic block: %d elements", stage, nqels)
    return QuadraticData(ncols, nqstarts, nqindx, nqdels, copy=False)
