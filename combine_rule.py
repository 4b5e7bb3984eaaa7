import numpy as np

from packed import PackedVector


class CombineRule:
    """
    Policy that merges a node's sparse delta onto a baseline.

    The baseline is either a dense stage buffer, a dense core row or a
    sparse core row. Indices are internal indices.
    """

    def process_array(self, out, offset, indices, elements):
        """
        Applies a delta onto a dense stage buffer in place.

        Parameters:
            out (numpy.ndarray): Baseline values, out[0] is internal index `offset`.
            offset (int): Internal index of the first buffer entry.
            indices (array-like): Internal indices of the delta.
            elements (array-like): Delta values.
        Returns:
            out (numpy.ndarray): The same buffer.
        """
        raise NotImplementedError

    def process_dense_row(self, dense_row, indices, elements):
        """
        Applies a delta onto a dense core row and packs the result.

        The dense row is overwritten.

        Returns:
            PackedVector with the nonzeros of the combined row.
        """
        raise NotImplementedError

    def process_sparse(self, core_row, node_row):
        """Merges two sparse rows; the result is sorted by index."""
        raise NotImplementedError

    @staticmethod
    def _pack_nonzeros(dense_row):
        nz = np.flatnonzero(dense_row)
        return PackedVector(nz, dense_row[nz])

    @staticmethod
    def _pack_dict(entries):
        # zeros left by the merge are dropped, as the dense path does
        return PackedVector.from_dict({i: v for i, v in entries.items() if v != 0.0})


class IdentityRule(CombineRule):
    """Core nodes: the node data is the baseline, deltas are not applied."""

    def process_array(self, out, offset, indices, elements):
        return out

    def process_dense_row(self, dense_row, indices, elements):
        return self._pack_nonzeros(dense_row)

    def process_sparse(self, core_row, node_row):
        return PackedVector(core_row.indices, core_row.elements).sort_increasing_index()


class ReplaceRule(CombineRule):
    """Delta entries replace the baseline entries at the same index."""

    def process_array(self, out, offset, indices, elements):
        out[np.asarray(indices, dtype=np.int64) - offset] = elements
        return out

    def process_dense_row(self, dense_row, indices, elements):
        dense_row[np.asarray(indices, dtype=np.int64)] = elements
        return self._pack_nonzeros(dense_row)

    def process_sparse(self, core_row, node_row):
        merged = core_row.as_dict()
        merged.update(node_row.as_dict())
        return self._pack_dict(merged)


class AddRule(CombineRule):
    """Delta entries are added to the baseline entries at the same index."""

    def process_array(self, out, offset, indices, elements):
        np.add.at(out, np.asarray(indices, dtype=np.int64) - offset, elements)
        return out

    def process_dense_row(self, dense_row, indices, elements):
        np.add.at(dense_row, np.asarray(indices, dtype=np.int64), elements)
        return self._pack_nonzeros(dense_row)

    def process_sparse(self, core_row, node_row):
        merged = core_row.as_dict()
        for i, v in node_row.as_dict().items():
            merged[i] = merged.get(i, 0.0) + v
        return self._pack_dict(merged)
