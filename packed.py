import numpy as np


class PackedVector:
    """
    Sparse vector stored as parallel index / value arrays.

    Indices are not required to be sorted. Duplicate indices are not merged.
    """

    def __init__(self, indices=None, elements=None):
        if indices is None:
            indices = []
        if elements is None:
            elements = []
        self.indices = np.asarray(indices, dtype=np.int64).copy()
        self.elements = np.asarray(elements, dtype=float).copy()
        assert self.indices.shape == self.elements.shape

    @classmethod
    def from_dense(cls, values):
        # every position is kept, zeros included
        values = np.asarray(values, dtype=float)
        return cls(np.arange(values.shape[0]), values)

    @classmethod
    def from_dict(cls, entries):
        keys = sorted(entries)
        return cls(keys, [entries[k] for k in keys])

    def __len__(self):
        return self.indices.shape[0]

    def __repr__(self):
        return f"PackedVector(indices={self.indices.tolist()}, elements={self.elements.tolist()})"

    def to_dense(self, size):
        dense = np.zeros(size)
        dense[self.indices] = self.elements
        return dense

    def as_dict(self):
        return {int(i): float(v) for i, v in zip(self.indices, self.elements)}

    def sort_increasing_index(self):
        order = np.argsort(self.indices, kind="stable")
        self.indices = self.indices[order]
        self.elements = self.elements[order]
        return self


def as_packed(source):
    """
    Converts an optional vector source to a PackedVector.

    None stays None (no override). Dicts map index -> value, anything else is
    read as a dense array.
    """
    if source is None or isinstance(source, PackedVector):
        return source
    if isinstance(source, dict):
        return PackedVector.from_dict(source)
    return PackedVector.from_dense(source)


class StageArray:
    """
    Dense values of one stage, addressed by absolute (internal) index.

    Element i of the stage lives at data[i - offset].
    """

    def __init__(self, data, offset):
        self.data = np.asarray(data, dtype=float)
        self.offset = offset

    @classmethod
    def filled(cls, size, offset, fill_value):
        return cls(np.full(size, fill_value, dtype=float), offset)

    @property
    def start(self):
        return self.offset

    @property
    def stop(self):
        return self.offset + self.data.shape[0]

    @property
    def values(self):
        return self.data

    def __len__(self):
        return self.data.shape[0]

    def __getitem__(self, i):
        return self.data[i - self.offset]

    def scatter(self, indices, elements):
        self.data[np.asarray(indices, dtype=np.int64) - self.offset] = elements

    def copy(self):
        return StageArray(self.data.copy(), self.offset)
