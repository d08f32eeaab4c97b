"""
tapegrad Core: Storage and TensorCore
=====================================

The foundation layer - raw buffers and the tracked array handle.

Every TensorCore gets a TensorId at construction. The id is drawn from a
process-wide counter, so it is never reused while the process lives, and it
is the only key the autograd layer uses to refer to a tensor.
"""

from __future__ import annotations
import itertools
import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Optional, Union, List, Any

import numpy as np

from ..errors import DisposedError


TensorId = int

_tensor_ids = itertools.count(1)


def _next_tensor_id() -> TensorId:
    return next(_tensor_ids)


@dataclass(frozen=True)
class Device:
    """Represents a compute device."""
    device_type: str = "cpu"
    index: int = 0

    def __post_init__(self):
        if self.device_type not in ("cpu", "cuda"):
            raise ValueError(f"Unknown device type: {self.device_type}")

    def __repr__(self) -> str:
        if self.device_type == "cpu":
            return "cpu"
        return f"cuda:{self.index}"

    __str__ = __repr__


CPU = Device("cpu")


class DType(Enum):
    FLOAT32 = ("float32", np.float32, 4)
    FLOAT64 = ("float64", np.float64, 8)
    INT32 = ("int32", np.int32, 4)
    INT64 = ("int64", np.int64, 8)
    BOOL = ("bool", np.bool_, 1)

    def __init__(self, label: str, numpy_dtype, size: int):
        self.label = label
        self.numpy_dtype = numpy_dtype
        self.itemsize = size

    @property
    def is_floating(self) -> bool:
        return self in (DType.FLOAT32, DType.FLOAT64)

    @staticmethod
    def from_numpy(np_dtype) -> 'DType':
        np_dtype = np.dtype(np_dtype)
        for dt in DType:
            if np.dtype(dt.numpy_dtype) == np_dtype:
                return dt
        if np.issubdtype(np_dtype, np.floating):
            return DType.FLOAT64
        if np.issubdtype(np_dtype, np.integer):
            return DType.INT64
        raise TypeError(f"Unsupported dtype: {np_dtype}")

    @staticmethod
    def from_name(name: str) -> 'DType':
        for dt in DType:
            if dt.label == name:
                return dt
        raise ValueError(f"Unknown dtype name: {name}")

    def __repr__(self) -> str:
        return f"tg.{self.label}"


float32 = DType.FLOAT32
float64 = DType.FLOAT64
int32 = DType.INT32
int64 = DType.INT64
bool_ = DType.BOOL


class Storage:
    """
    Raw memory buffer backing tensor data.

    Storage is reference counted: views of a tensor share one Storage and
    each holder calls `release()` when done. The buffer is dropped when the
    count reaches zero.
    """

    def __init__(
        self,
        size: int,
        dtype: DType = float32,
        device: Device = CPU,
        data: Optional[np.ndarray] = None
    ):
        if device.device_type != "cpu":
            raise NotImplementedError(f"Device {device} is not supported yet")
        self.size = size
        self.dtype = dtype
        self.device = device
        self._ref_count = 1

        if data is not None:
            self._data = np.asarray(data).astype(dtype.numpy_dtype).flatten()
            if len(self._data) != size:
                raise ValueError(
                    f"Storage size {size} does not match data of length {len(self._data)}"
                )
        else:
            self._data = np.zeros(size, dtype=dtype.numpy_dtype)

    @property
    def ref_count(self) -> int:
        return self._ref_count

    @property
    def released(self) -> bool:
        return self._data is None

    def retain(self) -> 'Storage':
        if self.released:
            raise DisposedError("Cannot retain a released storage")
        self._ref_count += 1
        return self

    def release(self):
        """Drop one reference; frees the buffer when none are left."""
        if self.released:
            return
        self._ref_count -= 1
        if self._ref_count <= 0:
            self._ref_count = 0
            self._data = None

    def numpy(self) -> np.ndarray:
        if self._data is None:
            raise DisposedError("Storage has been released")
        return self._data

    def clone(self) -> 'Storage':
        return Storage(self.size, self.dtype, self.device, self.numpy().copy())


class TensorCore:
    """
    The tracked array handle.

    Carries shape, dtype, device and a stable `id`. Numeric work lives in
    the backend; this class only owns the buffer and its disposal.
    """

    def __init__(
        self,
        storage: Storage,
        shape: Tuple[int, ...],
        dtype: DType = float32,
        device: Device = CPU,
    ):
        self.storage = storage
        self.shape = tuple(shape)
        self.dtype = dtype
        self.device = device
        self.id: TensorId = _next_tensor_id()
        self._disposed = False

        if math.prod(self.shape) != storage.size:
            raise ValueError(
                f"Shape {self.shape} does not match storage of size {storage.size}"
            )

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def numel(self) -> int:
        return math.prod(self.shape)

    size = numel

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def numpy(self) -> np.ndarray:
        if self._disposed:
            raise DisposedError(f"Tensor {self.id} has been disposed")
        return self.storage.numpy().reshape(self.shape)

    def item(self) -> Union[float, int, bool]:
        if self.numel != 1:
            raise ValueError(f"item() needs a single element tensor, got shape {self.shape}")
        return self.numpy().reshape(-1)[0].item()

    def dispose(self):
        """Release this handle's hold on its storage. Disposing twice is a no-op."""
        if self._disposed:
            return
        self._disposed = True
        self.storage.release()

    def clone(self) -> 'TensorCore':
        return TensorCore(self.storage.clone(), self.shape, self.dtype, self.device)

    def view(self, *new_shape: int) -> 'TensorCore':
        if self._disposed:
            raise DisposedError(f"Tensor {self.id} has been disposed")
        new_shape = list(new_shape)
        neg_idx = None
        known_numel = 1
        for i, s in enumerate(new_shape):
            if s == -1:
                if neg_idx is not None:
                    raise ValueError("Only one dimension can be -1")
                neg_idx = i
            else:
                known_numel *= s
        if neg_idx is not None:
            new_shape[neg_idx] = self.numel // known_numel
        if math.prod(new_shape) != self.numel:
            raise ValueError(f"Cannot reshape {self.shape} to {tuple(new_shape)}")
        return TensorCore(self.storage.retain(), tuple(new_shape), self.dtype, self.device)

    reshape = view

    def __repr__(self) -> str:
        if self._disposed:
            return f"tensor(<disposed>, id={self.id})"
        data_str = np.array2string(self.numpy(), precision=4, suppress_small=True)
        return f"tensor({data_str}, id={self.id}, dtype={self.dtype.label})"


def _create_tensor(
    data: Union[np.ndarray, List, float, int],
    dtype: Optional[DType] = None,
    device: Device = CPU,
) -> TensorCore:
    if isinstance(data, TensorCore):
        data = data.numpy()
    if isinstance(data, (bool, int, float, np.generic)):
        arr = np.asarray(data)
    elif isinstance(data, (list, tuple)):
        arr = np.array(data)
    elif isinstance(data, np.ndarray):
        arr = data
    else:
        raise TypeError(f"Cannot create tensor from {type(data)}")

    if dtype is None:
        if arr.dtype == np.float64 and not isinstance(data, np.ndarray):
            # Python floats default to the configured dtype
            from ..config import get_config
            dtype = get_config().default_dtype
        else:
            dtype = DType.from_numpy(arr.dtype)

    storage = Storage(arr.size, dtype, device, arr.flatten())
    return TensorCore(storage=storage, shape=arr.shape, dtype=dtype, device=device)


def _default_dtype(dtype: Optional[DType]) -> DType:
    if dtype is not None:
        return dtype
    from ..config import get_config
    return get_config().default_dtype


def full(shape: Tuple[int, ...], value: Any, dtype: Optional[DType] = None, device: Device = CPU) -> TensorCore:
    dtype = _default_dtype(dtype)
    shape = tuple(shape)
    data = np.full(math.prod(shape), value, dtype=dtype.numpy_dtype)
    return TensorCore(Storage(data.size, dtype, device, data), shape, dtype, device)


def fill_like(other: TensorCore, value: Any, dtype: Optional[DType] = None) -> TensorCore:
    """A tensor with `other`'s shape, every element set to `value`."""
    if dtype is None:
        dtype = other.dtype if other.dtype.is_floating else _default_dtype(None)
    return full(other.shape, value, dtype=dtype, device=other.device)


def zeros(*shape: int, dtype: Optional[DType] = None, device: Device = CPU) -> TensorCore:
    return full(shape, 0, dtype=dtype, device=device)


def ones(*shape: int, dtype: Optional[DType] = None, device: Device = CPU) -> TensorCore:
    return full(shape, 1, dtype=dtype, device=device)


def randn(*shape: int, dtype: Optional[DType] = None, device: Device = CPU) -> TensorCore:
    dtype = _default_dtype(dtype)
    data = np.random.randn(*shape).astype(dtype.numpy_dtype)
    return _create_tensor(data, dtype, device)


def rand(*shape: int, dtype: Optional[DType] = None, device: Device = CPU) -> TensorCore:
    dtype = _default_dtype(dtype)
    data = np.random.rand(*shape).astype(dtype.numpy_dtype)
    return _create_tensor(data, dtype, device)


def scalar(value: Union[float, int], dtype: Optional[DType] = None, device: Device = CPU) -> TensorCore:
    return full((), value, dtype=dtype, device=device)


def tensor(data, dtype: Optional[DType] = None, device: Device = CPU) -> TensorCore:
    return _create_tensor(data, dtype, device)


def from_numpy(arr: np.ndarray) -> TensorCore:
    return _create_tensor(np.asarray(arr))
