import os
from dataclasses import dataclass, replace
from typing import Optional

_DTYPES = ('float32', 'float64')

@dataclass(frozen=True)
class Settings:
    backend: str = 'cpu'
    dtype: str = 'float64'
    seed: Optional[int] = None
    log_level: str = 'INFO'
    device_id: int = 0

    def __post_init__(self):
        if self.dtype not in _DTYPES:
            raise ValueError(f"Unsupported dtype: {self.dtype}. Expected one of {_DTYPES}")

    @classmethod
    def from_env(cls, **overrides) -> 'Settings':
        seed = os.environ.get('BLOBNET_SEED')
        settings = cls(
            backend=os.environ.get('BLOBNET_BACKEND', cls.backend).lower(),
            dtype=os.environ.get('BLOBNET_DTYPE', cls.dtype).lower(),
            seed=int(seed) if seed else None,
            log_level=os.environ.get('BLOBNET_LOG_LEVEL', cls.log_level).upper(),
            device_id=int(os.environ.get('BLOBNET_DEVICE', cls.device_id)),
        )
        return replace(settings, **overrides)
