import numpy as np
import pytest
import scipy.sparse as sp

from core_data import CoreData

INF = 1e30


@pytest.fixture()
def staircase():
    """Three stages, columns 2/2/2 and rows 2/1/1, already in stage order."""
    A = np.array([
        [1.0, 2.0, 0.0, 0.0, 0.0, 0.0],
        [0.0, 3.0, 0.0, 0.0, 0.0, 0.0],
        [4.0, 0.0, 5.0, 6.0, 0.0, 0.0],
        [0.0, 0.0, 7.0, 0.0, 8.0, 9.0],
    ])
    return {
        'matrix': sp.csr_matrix(A),
        'dense': A,
        'col_stage': [0, 0, 1, 1, 2, 2],
        'row_stage': [0, 0, 1, 2],
        'col_lower': np.zeros(6),
        'col_upper': np.array([10.0, 11.0, 12.0, 13.0, 14.0, 15.0]),
        'objective': np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0]),
        'row_lower': np.array([1.0, 2.0, 3.0, 4.0]),
        'row_upper': np.array([10.0, 20.0, 30.0, 40.0]),
    }


@pytest.fixture()
def staircase_core(staircase):
    s = staircase
    return CoreData(
        4, 6, 3, s['col_stage'], s['row_stage'], s['matrix'],
        col_lower=s['col_lower'], col_upper=s['col_upper'], objective=s['objective'],
        row_lower=s['row_lower'], row_upper=s['row_upper'], infinity=INF,
    )


@pytest.fixture()
def shuffled():
    """Same sizes as the staircase, but stages interleaved in external order."""
    A = np.array([
        [0.0, 1.0, 2.0, 0.0, 0.0, 0.0],   # row 0, stage 1
        [0.0, 3.0, 0.0, 4.0, 0.0, 0.0],   # row 1, stage 0
        [5.0, 6.0, 0.0, 0.0, 7.0, 8.0],   # row 2, stage 2
        [0.0, 0.0, 0.0, 9.0, 0.0, 0.0],   # row 3, stage 0
    ])
    return {
        'matrix': sp.csr_matrix(A),
        'col_stage': [2, 0, 1, 0, 2, 1],
        'row_stage': [1, 0, 2, 0],
        'objective': np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0]),
        'col_names': ["C0", "C1", "C2", "C3", "C4", "C5"],
        'row_names': ["R0", "R1", "R2", "R3"],
    }


@pytest.fixture()
def shuffled_core(shuffled):
    s = shuffled
    return CoreData(
        4, 6, 3, s['col_stage'], s['row_stage'], s['matrix'],
        objective=s['objective'], integer_indices=[3, 4], binary_indices=[5],
        col_names=s['col_names'], row_names=s['row_names'], infinity=INF,
    )


COR_FILE = """NAME          TOY
ROWS
 N  OBJ
 L  CAP
 G  DEM1
 G  DEM2
COLUMNS
    MARKER    'MARKER'  'INTORG'
    X1        OBJ       1.0        CAP       1.0
    X1        DEM1      1.0
    MARKER    'MARKER'  'INTEND'
    X2        OBJ       2.0        CAP       1.0
    X2        DEM2      1.0
    Y1        OBJ       3.0        DEM1      1.0
    Y2        OBJ       4.0        DEM1      0.5
    Y2        DEM2      1.0
RHS
    RIGHT     CAP       10.0       DEM1      4.0
    RIGHT     DEM2      5.0
BOUNDS
 UP BND       X2        6.0
ENDATA
"""

TIM_FILE = """TIME          TOY
PERIODS
    X1        CAP       PERIOD1
    Y1        DEM1      PERIOD2
ENDATA
"""

STO_BLOCKS_FILE = """STOCH         TOY
BLOCKS        DISCRETE
 BL BLOCK1    PERIOD2   0.4
    RIGHT     DEM1      6.0        DEM2      7.0
 BL BLOCK1    PERIOD2   0.6
    RIGHT     DEM1      8.0
ENDATA
"""

STO_INDEP_FILE = """STOCH         TOY
INDEP         DISCRETE
    RIGHT     DEM1      6.0       PERIOD2   0.5
    RIGHT     DEM1      8.0       PERIOD2   0.5
    RIGHT     DEM2      7.0       PERIOD2   0.25
    RIGHT     DEM2      9.0       PERIOD2   0.75
ENDATA
"""


@pytest.fixture()
def smps_files(tmp_path):
    paths = {}
    for key, text in (("cor", COR_FILE), ("tim", TIM_FILE),
                      ("sto_blocks", STO_BLOCKS_FILE), ("sto_indep", STO_INDEP_FILE)):
        path = tmp_path / f"toy.{key}"
        path.write_text(text)
        paths[key] = str(path)
    return paths
