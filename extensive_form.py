import logging

import numpy as np
import scipy.sparse as sp

from node_data import NodeData

logger = logging.getLogger(__name__)


def rhs_scenario_node(core, stage, rhs, row_sense, ranges=None):
    """
    Builds the node of one scenario from right-hand side changes.

    A new right-hand side moves the whole row interval: both finite bounds
    are shifted by the change of the bound that holds the old right-hand
    side, so ranged rows keep their width.

    Parameters:
        core (CoreData): Core problem with row names.
        stage (int): Stage of the node.
        rhs (dict): Row name -> new right-hand side.
        row_sense (list): Sense ('L', 'G', 'E') of every external row.
        ranges (dict): Optional external row index -> RANGES value. Only the
            sign matters: an 'E' row with a negative range holds its
            right-hand side in the upper bound.
    Returns:
        NodeData holding row bound overrides for the rows of `stage`.
    """
    row_index = {name: i for i, name in enumerate(core.row_names)}
    ranges = ranges or {}
    lower = core.cdrlo[stage]
    upper = core.cdrup[stage]
    row_lower = {}
    row_upper = {}
    for name, val in rhs.items():
        if name not in row_index:
            raise ValueError(f"Unknown row name {name} in scenario")
        i = row_index[name]
        ii = core.get_row_internal_index(i)
        if not lower.start <= ii < lower.stop:
            # rows of other stages are not part of this node
            continue
        lo, up = lower[ii], upper[ii]
        sense = row_sense[i]
        if sense == "L" or (sense == "E" and ranges.get(i, 0.0) < 0):
            shift = val - up
        elif sense in ("G", "E"):
            shift = val - lo
        else:
            continue
        if lo > -core.infinity:
            row_lower[i] = lo + shift
        if up < core.infinity:
            row_upper[i] = up + shift
    return NodeData(stage, core, row_lower=row_lower or None, row_upper=row_upper or None)


def path_scenarios(core, sto_scenarios, row_sense, ranges=None):
    """
    Turns parsed stochastic data into scenario paths.

    The changes of every scenario are split by the stage of their rows; a
    stage without changes uses the core node (None).

    Parameters:
        core (CoreData): Core problem.
        sto_scenarios (list): Tuples (probability, {row_name: rhs}).
        row_sense (list): Sense of every external row.
        ranges (dict): Optional external row index -> RANGES value.
    Returns:
        list of tuples (probability, [node for stages 1..T-1])
    """
    row_index = {name: i for i, name in enumerate(core.row_names)}
    scenarios = []
    for prob, rhs in sto_scenarios:
        by_stage = {}
        for name, val in rhs.items():
            if name not in row_index:
                raise ValueError(f"Unknown row name {name} in scenario")
            t = core.get_row_stage(row_index[name])
            if t == 0:
                raise ValueError(f"Row {name} of the first stage cannot change by scenario")
            by_stage.setdefault(t, {})[name] = val
        path = []
        for t in range(1, core.get_num_stages()):
            if t in by_stage:
                path.append(rhs_scenario_node(core, t, by_stage[t], row_sense, ranges))
            else:
                path.append(None)
        scenarios.append((prob, path))
    return scenarios


def build_extensive_form(core, scenarios):
    """
    Assembles the deterministic equivalent of a scenario tree.

    Parameters:
        core (CoreData): Core problem. Its stage 0 is the root of the tree.
        scenarios (list): Tuples (probability, path) where path holds one
            node for each stage 1..T-1 (None means the core node of that
            stage). Scenarios with the same nodes up to stage t share their
            block of stage t.
    Returns:
        Mapping with the sparse constraint matrix, row and column bounds,
        probability weighted objective, integer columns and the column block
        of every tree node.
    """
    nstag = core.get_num_stages()
    root = core.get_node(0)

    # === TREE NODES ===
    blocks = {}
    order = []
    n_ext = 0
    m_ext = 0
    for prob, path in scenarios:
        if len(path) != nstag - 1:
            raise ValueError(f"Scenario path has {len(path)} nodes, expected {nstag - 1}")
        nodes = [root] + [n if n is not None else core.get_node(t + 1) for t, n in enumerate(path)]
        ancestors = []
        for t, node in enumerate(nodes):
            if node.stage != t:
                raise ValueError(f"Node of stage {node.stage} placed at stage {t}")
            key = tuple(id(n) for n in nodes[:t + 1])
            if key not in blocks:
                blocks[key] = {
                    'stage': t,
                    'node': node,
                    'col_start': n_ext,
                    'row_start': m_ext,
                    'prob': 0.0,
                    'ancestors': ancestors + [key],
                }
                n_ext += core.get_num_cols(t)
                m_ext += core.get_num_rows(t)
                order.append(key)
            blocks[key]['prob'] += prob
            ancestors = ancestors + [key]

    c_ext = np.zeros(n_ext)
    col_lower = np.zeros(n_ext)
    col_upper = np.zeros(n_ext)
    row_lower = np.zeros(m_ext)
    row_upper = np.zeros(m_ext)
    integer_indices = []
    binary_indices = []
    data, row_ind, col_ind = [], [], []

    # stage of every internal column
    col_stage_in = np.searchsorted(core.stage_col_ptr, np.arange(core.get_num_cols()), side="right") - 1

    for key in order:
        block = blocks[key]
        t = block['stage']
        node = block['node']
        cs, rs = block['col_start'], block['row_start']
        nc, nr = core.get_num_cols(t), core.get_num_rows(t)

        col_lower[cs:cs + nc] = node.copy_col_lower()
        col_upper[cs:cs + nc] = node.copy_col_upper()
        c_ext[cs:cs + nc] = block['prob'] * node.copy_objective()
        row_lower[rs:rs + nr] = node.copy_row_lower()
        row_upper[rs:rs + nr] = node.copy_row_upper()
        integer_indices.extend(cs + core.get_integer_cols_in_stage(t))
        binary_indices.extend(cs + core.get_binary_cols_in_stage(t))

        # columns of stage s map into the block of this node's ancestor at stage s
        ancestor_starts = np.array([blocks[a]['col_start'] for a in block['ancestors']])
        core_node = core.get_node(t)
        row_start = core.get_row_start(t)
        for i in range(row_start, row_start + nr):
            dense_row = core_node.get_dense_row(i)
            row = node.combine_with_dense_core_row(
                dense_row, node.get_row_indices(i), node.get_row_elements(i))
            stages = col_stage_in[row.indices]
            if np.any(stages > t):
                raise ValueError(f"Row {i} of stage {t} references a later stage")
            cols = ancestor_starts[stages] + row.indices - core.stage_col_ptr[stages]
            data.extend(row.elements)
            row_ind.extend([rs + i - row_start] * len(row))
            col_ind.extend(cols)

    A_ext = sp.csr_matrix((data, (row_ind, col_ind)), shape=(m_ext, n_ext))

    logger.info("Extensive form with %d tree nodes: %d rows, %d columns, %d elements",
                len(order), m_ext, n_ext, A_ext.nnz)

    return {
        'A_ext': A_ext,
        'c_ext': c_ext,
        'row_lower': row_lower,
        'row_upper': row_upper,
        'col_lower': col_lower,
        'col_upper': col_upper,
        'integer_indices': [int(j) for j in integer_indices],
        'binary_indices': [int(j) for j in binary_indices],
        'column_blocks': [(blocks[k]['stage'], blocks[k]['col_start'], blocks[k]['prob']) for k in order],
        'infinity': core.infinity,
        'K': len(scenarios),
    }
