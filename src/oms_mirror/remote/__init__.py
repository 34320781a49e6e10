from oms_mirror.remote.firebase import FirebaseItemSource
from oms_mirror.remote.interfaces import RemoteSource
from oms_mirror.remote.stock_script import StockScriptSource

__all__ = ["FirebaseItemSource", "RemoteSource", "StockScriptSource"]
