"""
Operations package - Application service layer between callers and the core.

This package provides the GatewayService facade that runs one invocation per
call, centralizes error mapping, and handles output formatting while keeping
CLI commands thin and testable.
"""
from .facade import GatewayService, run_unit
from .mappers import exit_code_for, exit_code_for_failure, run_and_exit

__all__ = ["GatewayService", "run_unit", "exit_code_for", "exit_code_for_failure", "run_and_exit"]
