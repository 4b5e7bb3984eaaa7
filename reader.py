import logging
from collections import defaultdict
from itertools import product

import numpy as np
import scipy.sparse as sp

from problem import DEFAULT_INFINITY, ProblemData, row_bounds_from_sense

logger = logging.getLogger(__name__)

RHS_NAMES = ("RIGHT", "RHS")


def _pairs(tokens):
    # name/value pairs, with or without a leading set name
    if len(tokens) % 2 == 1:
        tokens = tokens[1:]
    return [(tokens[i], float(tokens[i + 1])) for i in range(0, len(tokens), 2)]


def parse_cor(cor_file_path, infinity=DEFAULT_INFINITY):
    """
    Parses the core file of an SMPS instance (free MPS format).

    Parameters:
        cor_file_path (str): Path to the .cor file.
        infinity (float): Value used for unbounded bounds.
    Returns:
        ProblemData with the core problem in file order.
    """
    with open(cor_file_path, 'r') as f:
        lines = f.readlines()

    rows = []
    row_types = {}      # map from row name → type (N, L, G, E)
    entries = []        # (row, var, coef)
    obj_row = None
    free_rows = set()
    rhs = {}
    ranges = {}
    bounds = []         # (type, var, value)
    var_index = {}      # var → position
    integer_vars = set()
    in_integer_block = False
    reading_section = None

    for line in lines:
        line = line.strip()
        if not line or line.startswith("*"):
            continue

        tokens = line.split()
        # a section header may carry a set name, e.g. "RHS RIGHT"
        if tokens[0] in ("ROWS", "COLUMNS", "RHS", "RANGES", "BOUNDS") and len(tokens) <= 2:
            reading_section = tokens[0]
            continue
        elif tokens[0] == "ENDATA":
            break
        elif tokens[0] == "NAME":
            continue

        if reading_section == "ROWS":
            row_type, row_name = tokens
            if row_type == "N":
                # first free row is the objective, further free rows are dropped
                if obj_row is None:
                    obj_row = row_name
                else:
                    free_rows.add(row_name)
                continue
            row_types[row_name] = row_type
            rows.append(row_name)

        elif reading_section == "COLUMNS":
            if len(tokens) >= 3 and tokens[1].strip("'") == "MARKER":
                in_integer_block = tokens[2].strip("'") == "INTORG"
                continue
            var = tokens[0]
            if var not in var_index:
                var_index[var] = len(var_index)
            if in_integer_block:
                integer_vars.add(var)
            for row, val in _pairs(tokens[1:]):
                entries.append((row, var, val))

        elif reading_section == "RHS":
            for row, val in _pairs(tokens):
                rhs[row] = val

        elif reading_section == "RANGES":
            for row, val in _pairs(tokens):
                ranges[row] = val

        elif reading_section == "BOUNDS":
            bound_type = tokens[0]
            if len(tokens) == 4:
                bounds.append((bound_type, tokens[2], float(tokens[3])))
            elif len(tokens) == 3 and bound_type in ("FR", "MI", "PL", "BV"):
                bounds.append((bound_type, tokens[2], None))
            elif len(tokens) == 3:
                # bound line without a set name
                bounds.append((bound_type, tokens[1], float(tokens[2])))
            else:
                bounds.append((bound_type, tokens[1], None))
        else:
            raise ValueError(f"Unexpected line outside of a section: {line}")

    var_names = list(var_index)
    row_to_idx = {row: i for i, row in enumerate(rows)}
    num_vars = len(var_names)
    num_rows = len(rows)

    c = np.zeros(num_vars)
    data, row_ind, col_ind = [], [], []
    for row, var, val in entries:
        j = var_index[var]
        if row == obj_row:
            c[j] = val
        elif row in row_to_idx:
            row_ind.append(row_to_idx[row])
            col_ind.append(j)
            data.append(val)
        elif row in free_rows:
            # coefficients of dropped free rows are ignored
            continue
        else:
            raise ValueError(f"Unknown row name {row} in COLUMNS")
    A = sp.csr_matrix((data, (row_ind, col_ind)), shape=(num_rows, num_vars))

    b = np.array([rhs.get(row, 0.0) for row in rows])
    row_sense = [row_types[row] for row in rows]
    row_ranges = {row_to_idx[r]: v for r, v in ranges.items() if r in row_to_idx}
    row_lower, row_upper = row_bounds_from_sense(row_sense, b, infinity, row_ranges)

    col_lower = np.zeros(num_vars)
    col_upper = np.full(num_vars, infinity)
    binary_vars = set()
    for bound_type, var, val in bounds:
        if var not in var_index:
            raise ValueError(f"Unknown column name {var} in BOUNDS")
        j = var_index[var]
        if bound_type == "UP":
            col_upper[j] = val
            if val < 0 and col_lower[j] == 0:
                col_lower[j] = -infinity
        elif bound_type == "LO":
            col_lower[j] = val
        elif bound_type == "FX":
            col_lower[j] = val
            col_upper[j] = val
        elif bound_type == "FR":
            col_lower[j] = -infinity
            col_upper[j] = infinity
        elif bound_type == "MI":
            col_lower[j] = -infinity
        elif bound_type == "PL":
            col_upper[j] = infinity
        elif bound_type == "BV":
            col_lower[j] = 0.0
            col_upper[j] = 1.0
            binary_vars.add(var)
        else:
            raise ValueError(f"Unknown bound type: {bound_type}")

    logger.debug("Read %s: %d rows, %d columns, %d elements",
                 cor_file_path, num_rows, num_vars, A.nnz)

    return ProblemData(
        A, col_lower, col_upper, c, row_lower, row_upper,
        infinity=infinity,
        integer_indices=sorted(var_index[v] for v in integer_vars - binary_vars),
        binary_indices=sorted(var_index[v] for v in binary_vars),
        col_names=var_names,
        row_names=rows,
        row_sense=row_sense,
        row_ranges=row_ranges,
    )


def parse_tim(tim_file_path):
    """
    Parses the time file of an SMPS instance (implicit PERIODS format).

    Each period is given by its first column and first row. When a period
    is listed more than once, its first line is used.

    Returns:
        list of (period, col_name, row_name) in file order.
    """
    with open(tim_file_path, 'r') as f:
        lines = f.readlines()

    periods = []
    seen = set()
    in_periods_section = False

    for line in lines:
        line = line.strip()
        if line.startswith("PERIODS"):
            in_periods_section = True
            continue
        elif line.startswith("ENDATA"):
            break
        elif not in_periods_section or not line or line.startswith("*"):
            continue

        tokens = line.split()
        if len(tokens) != 3:
            raise ValueError(f"Malformed PERIODS line: {line}")

        var, row, period = tokens
        if period not in seen:
            seen.add(period)
            periods.append((period, var, row))

    return periods


def stage_assignment(problem, periods):
    """
    Assigns every column and row of the core to a stage.

    Parameters:
        problem (ProblemData): Core problem with column and row names.
        periods (list): Output of parse_tim.
    Returns:
        col_stage, row_stage (numpy.ndarray)
    """
    col_pos = {name: j for j, name in enumerate(problem.col_names)}
    row_pos = {name: i for i, name in enumerate(problem.row_names)}

    col_starts = []
    row_starts = []
    for period, var, row in periods:
        if var not in col_pos:
            raise ValueError(f"Unknown column {var} for period {period}")
        if row not in row_pos:
            raise ValueError(f"Unknown row {row} for period {period}")
        col_starts.append(col_pos[var])
        row_starts.append(row_pos[row])

    if np.any(np.diff(col_starts) <= 0) or np.any(np.diff(row_starts) <= 0):
        raise ValueError("Periods are not in core file order")

    col_stage = np.searchsorted(col_starts, np.arange(problem.get_num_cols()), side="right") - 1
    row_stage = np.searchsorted(row_starts, np.arange(problem.get_num_rows()), side="right") - 1
    # anything before the first period start belongs to the first stage
    return np.maximum(col_stage, 0), np.maximum(row_stage, 0)


def _rhs_entries(tokens, line):
    if tokens[0] not in RHS_NAMES:
        raise ValueError(f"Only right-hand side changes are supported: {line}")
    return _pairs(tokens[1:])


def parse_sto_dep(sto_file_path):
    """
    Parses a stochastic file with BLOCKS DISCRETE sections.

    Every block realisation is one scenario.

    Returns:
        list of tuples (probability, {row_name: rhs})
    """
    scenarios = []
    current_rhs = {}
    prob = None

    with open(sto_file_path, 'r') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("*"):
                continue
            if line.startswith("ENDATA"):
                break

            tokens = line.split()

            if tokens[0] in ("STOCH", "BLOCKS"):
                continue

            elif tokens[0] == "BL":
                # Save previous block
                if prob is not None:
                    scenarios.append((prob, current_rhs))
                # Start new block
                prob = float(tokens[3])
                current_rhs = {}

            else:
                if prob is None:
                    raise ValueError(f"Entry outside of a block: {line}")
                for row, val in _rhs_entries(tokens, line):
                    current_rhs[row] = val

    # Final scenario
    if prob is not None:
        scenarios.append((prob, current_rhs))

    logger.debug("Read %d block scenarios from %s", len(scenarios), sto_file_path)
    return scenarios


def parse_sto_indep(sto_file_path):
    """
    Parses a stochastic file with an INDEP DISCRETE section.

    Rows are independent, so scenarios are all combinations of their values
    and the probability of a scenario is the product of its parts.

    Returns:
        list of tuples (probability, {row_name: rhs})
    """
    rhs_values = defaultdict(list)  # row → list of (value, prob)

    with open(sto_file_path, 'r') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith(("STOCH", "INDEP", "*")):
                continue
            if line.startswith("ENDATA"):
                break

            tokens = line.split()
            if len(tokens) != 5 or tokens[0] not in RHS_NAMES:
                raise ValueError(f"Only right-hand side changes are supported: {line}")
            row = tokens[1]
            val = float(tokens[2])
            prob = float(tokens[4])
            rhs_values[row].append((val, prob))

    # Cartesian product of independent RHS values
    demand_rows = list(rhs_values.keys())
    scenarios = []

    for value_combo in product(*[rhs_values[r] for r in demand_rows]):
        rhs = {}
        total_prob = 1.0
        for (val, prob), row in zip(value_combo, demand_rows):
            rhs[row] = val
            total_prob *= prob
        scenarios.append((total_prob, rhs))

    logger.debug("Read %d independent scenarios from %s", len(scenarios), sto_file_path)
    return scenarios
