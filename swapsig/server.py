"""
swapsig observer server.

Read-only HTTP view of a host's swap ledgers and action queues, fed by a
LedgerWatcher.

Endpoints:
  GET  /api/status                      - Health check and counters
  GET  /api/events                      - Committed notifications
  GET  /api/swaps                       - List swaps
  GET  /api/swap/{swap_id}              - Swap details
  GET  /api/multisig/{address}          - Signers, quorum, counters
  GET  /api/multisig/{address}/actions  - Queued actions

Run a devnet-backed server:
  python -m swapsig.server
"""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .chains.host import Host
from .core import InvalidParameters
from .devnet import DevnetConfig, build_devnet
from .routes import multisig as multisig_routes
from .routes import swaps as swap_routes
from .watcher import LedgerWatcher

log = logging.getLogger(__name__)


def create_app(host: Host, watcher: Optional[LedgerWatcher] = None) -> FastAPI:
    """
    Build the API for a host.

    A watcher is created and started if none is given.
    """
    if watcher is None:
        watcher = LedgerWatcher(host)
        watcher.start()

    app = FastAPI(
        title="swapsig",
        description="Swap ledger and threshold action queue observer",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    swap_routes.configure(watcher)
    multisig_routes.configure(watcher)
    app.include_router(swap_routes.router)
    app.include_router(multisig_routes.router)

    @app.get("/api/status")
    async def get_status():
        """Health check."""
        swaps = watcher.list_swaps()
        pending_actions = sum(
            len(watcher.list_actions(q, pending_only=True)) for q in watcher.queues
        )
        return {
            "status": "ok",
            "version": __version__,
            "timestamp": host.timestamp,
            "block_number": host.block_number,
            "contracts": len(host.contracts()),
            "swaps_total": len(swaps),
            "swaps_pending": len([s for s in swaps if not s.executed]),
            "queues": len(watcher.queues),
            "actions_pending": pending_actions,
        }

    @app.get("/api/events")
    async def get_events(
        event: Optional[str] = Query(None, description="Notification name"),
        address: Optional[str] = Query(None, description="Emitting contract"),
        since: int = Query(0, ge=0, description="First log index"),
    ) -> List[Dict[str, Any]]:
        """Committed notifications in log order."""
        try:
            logs = host.get_logs(event=event, address=address, from_index=since)
        except InvalidParameters as e:
            raise HTTPException(400, e.reason)
        return [n.to_dict() for n in logs]

    return app


def main():
    import uvicorn

    config = DevnetConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s'
    )

    devnet = build_devnet(config)
    app = create_app(devnet.host)

    for name, account in devnet.accounts.items():
        log.info(f"  {name:10s} {account.address}")
    log.info(f"  token A    {devnet.token_a.address}")
    log.info(f"  token B    {devnet.token_b.address}")
    log.info(f"  ledger     {devnet.ledger.address} (expires {devnet.ledger.expiry})")
    log.info(f"  queue      {devnet.queue.address} (quorum {devnet.queue.quorum})")

    port = int(os.environ.get("PORT", 8080))
    log.info(f"Starting swapsig observer on port {port}")
    log.info(f"Docs: http://0.0.0.0:{port}/docs")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
