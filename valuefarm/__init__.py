"""
valuefarm Package

Collateral-backed reward token, multi-pool reward distributor and timelock,
modelled as contracts on an in-process chain.

Core imports are lazily loaded. For direct module access, import from
submodules:

    from valuefarm.chain import Chain
    from valuefarm.tokens import CollateralToken
    from valuefarm.rewards import PoolRegistry
    from valuefarm.governance import Timelock
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy module loading so importing the package stays cheap."""
    if name == 'Chain':
        from .chain import Chain
        return Chain
    elif name == 'CollateralToken':
        from .tokens import CollateralToken
        return CollateralToken
    elif name == 'PoolRegistry':
        from .rewards import PoolRegistry
        return PoolRegistry
    elif name == 'Timelock':
        from .governance import Timelock
        return Timelock
    elif name == 'deploy_protocol':
        from .deployment import deploy_protocol
        return deploy_protocol
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'valuefarm' has no attribute {name!r}")

__all__ = ['Chain', 'CollateralToken', 'PoolRegistry', 'Timelock', 'deploy_protocol', 'load_config']
