"""
Prediction Market Engine Package

Core imports are lazily loaded so importing a submodule does not pull in
the whole engine. For direct module access, import from submodules:

    from predmarket.market import PredictionMarket, MarketManager
    from predmarket.config import load_config
    from predmarket.crypto import PrivateKey, sign_message
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'PredictionMarket':
        from .market import PredictionMarket
        return PredictionMarket
    elif name == 'MarketManager':
        from .market import MarketManager
        return MarketManager
    elif name == 'RequestContext':
        from .market import RequestContext
        return RequestContext
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'predmarket' has no attribute {name!r}")

__all__ = ['PredictionMarket', 'MarketManager', 'RequestContext', 'load_config']
