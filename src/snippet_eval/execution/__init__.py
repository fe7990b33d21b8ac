from .compile_stage import CompileStage
from .run_stage import ExecutionStage
from .toolchain import PythonToolchain, Toolchain

__all__ = [
    "CompileStage",
    "ExecutionStage",
    "PythonToolchain",
    "Toolchain",
]
