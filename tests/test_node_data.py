import numpy as np
import pytest
import scipy.sparse as sp
from numpy.testing import assert_array_equal

from combine_rule import IdentityRule, ReplaceRule
from core_data import CoreData
from node_data import NUM_ARRAYS, NodeData
from packed import PackedVector


def test_node_keeps_only_its_stage_columns(staircase_core, staircase):
    node = NodeData(1, staircase_core, col_upper=staircase['col_upper'])
    indices, elements = node.get_col_upper()
    assert_array_equal(indices, [2, 3])
    assert_array_equal(elements, [12.0, 13.0])
    assert node.num_elements == 2


def test_node_keeps_only_its_stage_rows(staircase_core, staircase):
    node = NodeData(2, staircase_core, row_lower=staircase['row_lower'],
                    row_upper=staircase['row_upper'])
    assert_array_equal(node.get_row_lower()[0], [3])
    assert_array_equal(node.get_row_upper()[1], [40.0])


def test_stored_indices_inside_stage_range(shuffled_core):
    full = np.arange(6, dtype=float)
    for t in range(3):
        node = NodeData(t, shuffled_core, col_lower=full, col_upper=full, objective=full)
        lo = shuffled_core.get_col_start(t)
        hi = lo + shuffled_core.get_num_cols(t)
        for indices, _ in (node.get_col_lower(), node.get_col_upper(), node.get_objective()):
            assert np.all((indices >= lo) & (indices < hi))


def test_packed_layout_is_exact(staircase_core, staircase):
    s = staircase
    node = NodeData(1, staircase_core, s['matrix'], s['col_lower'], s['col_upper'],
                    s['objective'], s['row_lower'], s['row_upper'])
    assert node.starts.shape[0] == staircase_core.get_num_rows(1) + 1 + NUM_ARRAYS
    assert np.all(np.diff(node.starts) >= 0)
    assert node.starts[-1] == node.num_elements
    assert node.inds.shape[0] == node.num_elements
    assert node.dels.shape[0] == node.num_elements
    # 3 matrix entries in row 2, then 2 per column vector and 1 per row vector
    assert node.num_elements == 3 + 2 * 3 + 1 * 2


def test_matrix_rows_use_internal_columns(shuffled_core, shuffled):
    node = NodeData(0, shuffled_core, shuffled['matrix'])
    # external row 1: columns 1 and 3 -> internal 0 and 1
    assert_array_equal(node.get_row_indices(0), [0, 1])
    assert_array_equal(node.get_row_elements(0), [3.0, 4.0])
    # external row 3: column 3 -> internal 1
    assert_array_equal(node.get_row_indices(1), [1])


def test_column_ordered_matrix_is_accepted(staircase_core, staircase):
    by_row = NodeData(2, staircase_core, staircase['matrix'])
    by_col = NodeData(2, staircase_core, sp.csc_matrix(staircase['dense']))
    assert_array_equal(by_row.inds, by_col.inds)
    assert_array_equal(by_row.dels, by_col.dels)


def test_node_without_sources_is_empty(staircase_core):
    node = NodeData(1, staircase_core)
    assert node.num_elements == 0
    assert not node.has_matrix
    assert node.get_row_length(2) == 0
    assert_array_equal(node.starts, np.zeros(1 + 1 + NUM_ARRAYS))
    assert_array_equal(node.copy_col_upper(), [12.0, 13.0])


def test_node_without_matching_entries_is_valid(staircase_core):
    node = NodeData(2, staircase_core, objective={0: 9.0, 1: 9.0})
    assert node.num_elements == 0
    assert_array_equal(node.copy_objective(), [5.0, 6.0])


def test_combine_rule_selected_by_node_kind(staircase_core):
    node = NodeData(1, staircase_core)
    assert isinstance(node.combine_rule, ReplaceRule)
    assert isinstance(staircase_core.get_node(1).combine_rule, IdentityRule)


def test_copy_accessors_override_core_values(staircase_core):
    node = NodeData(1, staircase_core, col_upper={3: 99.0}, objective={2: -1.0},
                    row_lower={2: 7.0}, row_upper={2: 8.0}, col_lower={2: 0.5})
    assert_array_equal(node.copy_col_upper(), [12.0, 99.0])
    assert_array_equal(node.copy_objective(), [-1.0, 4.0])
    assert_array_equal(node.copy_row_lower(), [7.0])
    assert_array_equal(node.copy_row_upper(), [8.0])
    assert_array_equal(node.copy_col_lower(), [0.5, 0.0])
    # the core itself is unchanged
    assert_array_equal(staircase_core.copy_col_upper(1), [12.0, 13.0])


def test_core_node_copies_are_core_values(staircase_core):
    node = staircase_core.get_node(0)
    assert_array_equal(node.copy_col_upper(), [10.0, 11.0])
    assert_array_equal(node.copy_row_upper(), [10.0, 20.0])


def test_dense_row(staircase_core):
    node = staircase_core.get_node(1)
    assert_array_equal(node.get_dense_row(2), [4.0, 0.0, 5.0, 6.0, 0.0, 0.0])


def test_dense_row_nonzeros_match_sparse_row(shuffled_core):
    node = shuffled_core.get_node(2)
    dense = node.get_dense_row(3)
    assert_array_equal(np.flatnonzero(dense), node.get_row_indices(3))
    assert_array_equal(dense[node.get_row_indices(3)], node.get_row_elements(3))


def test_dense_row_of_empty_row_is_zero():
    A = sp.csr_matrix(np.array([[1.0, 0.0], [0.0, 0.0]]))
    core = CoreData(2, 2, 1, [0, 0], [0, 0], A)
    assert_array_equal(core.get_node(0).get_dense_row(1), [0.0, 0.0])


def test_dense_row_is_cached_and_regenerated(staircase_core):
    node = staircase_core.get_node(1)
    first = node.get_dense_row(2)
    first[0] = 100.0
    second = node.get_dense_row(2)
    assert second is first
    assert second[0] == 4.0


def test_combine_with_dense_core_row(staircase_core):
    # row 2 sets column 0 to zero and column 3 to 1.5
    delta = sp.csr_matrix((np.array([0.0, 1.5]), np.array([0, 3]), np.array([0, 0, 0, 2, 2])),
                          shape=(4, 6))
    node = NodeData(1, staircase_core, delta)
    core_node = staircase_core.get_node(1)
    dense = core_node.get_dense_row(2)
    # explicit zeros are stored by the delta node and remove the core entry
    assert_array_equal(node.get_row_indices(2), [0, 3])
    combined = node.combine_with_dense_core_row(dense, node.get_row_indices(2), node.get_row_elements(2))
    assert_array_equal(combined.indices, [2, 3])
    assert_array_equal(combined.elements, [5.0, 1.5])


def test_combine_with_core_row(staircase_core):
    node = NodeData(1, staircase_core)
    core_row = staircase_core.get_node(1).get_row(2)
    combined = node.combine_with_core_row(core_row, PackedVector([3, 5], [1.0, 2.0]))
    assert combined.as_dict() == {0: 4.0, 2: 5.0, 3: 1.0, 5: 2.0}


def test_row_outside_stage_is_rejected(staircase_core):
    with pytest.raises(AssertionError):
        staircase_core.get_node(1).get_row_length(0)


def test_quadratic_only_on_core_nodes(staircase_core):
    from quadratic_data import QuadraticData

    table = QuadraticData.from_matrix(sp.identity(6, format="csc"))
    with pytest.raises(AssertionError):
        NodeData(0, staircase_core).add_quadratic_objective(0, staircase_core, table)
