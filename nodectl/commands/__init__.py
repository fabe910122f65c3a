from . import node

__all__ = ['node']
