"""
daosync - client-side synchronization core for a ledger-backed investment DAO.

Keeps a polled, time-bounded local view of the DAO treasury, member tokens
and funding proposals, and turns user intent (join, stake, propose, vote,
execute) into signed ledger actions.

## Quick Start

```python
from daosync import DaoClientAPI, StaticSignerLocator

locator = StaticSignerLocator()
locator.register("petra", my_wallet_bridge)

async with DaoClientAPI(locator=locator) as dao:
    await dao.connect("petra")
    stats = await dao.dao_stats()
    await dao.stake(5_000_000)
```
"""

from .client.client_api import DaoClientAPI
from .config import DaoSyncSettings
from .core.signer import StaticSignerLocator

__all__ = ["DaoClientAPI", "DaoSyncSettings", "StaticSignerLocator"]
