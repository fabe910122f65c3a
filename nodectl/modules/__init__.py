"""
Node management modules.
"""
from .node_add import add_node
from .powershell import (
    ExecutionResult,
    LocalPowerShellRunner,
    PowerShellResolver,
    SSHPowerShellRunner,
)
from .provision import HyperVProvisioner, MultipassProvisioner, Provisioner

__all__ = [
    'add_node',
    'ExecutionResult',
    'LocalPowerShellRunner',
    'PowerShellResolver',
    'SSHPowerShellRunner',
    'HyperVProvisioner',
    'MultipassProvisioner',
    'Provisioner',
]
