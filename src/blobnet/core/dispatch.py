from typing import Callable, Dict, Tuple

class KernelRegistry:
    """Kernels keyed by (operation, variant class, backend kind)."""
    _kernels: Dict[Tuple[str, type, str], Callable] = {}

    @classmethod
    def register(cls, op_name: str, variant: type, backend_kind: str, kernel: Callable) -> None:
        cls._kernels[(op_name, variant, backend_kind)] = kernel

    @classmethod
    def get(cls, op_name: str, variant: type, backend_kind: str) -> Callable:
        try:
            return cls._kernels[(op_name, variant, backend_kind)]
        except KeyError:
            raise NotImplementedError(
                f"No '{op_name}' kernel for {variant.__name__} on the {backend_kind} backend") from None

    @classmethod
    def has(cls, op_name: str, variant: type, backend_kind: str) -> bool:
        return (op_name, variant, backend_kind) in cls._kernels


def register_kernel(op_name: str, variant: type, *backend_kinds: str):
    def decorator(kernel: Callable):
        for kind in backend_kinds:
            KernelRegistry.register(op_name, variant, kind, kernel)
        return kernel
    return decorator
