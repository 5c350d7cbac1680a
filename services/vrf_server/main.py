import asyncio

from loguru import logger

from vrf_oracle.chains.solana_watcher import SolanaWatcher
from vrf_oracle.config import AppSettings
from vrf_oracle.context import VrfContext
from vrf_oracle.db import make_session_factory

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra} | <level>{message}</level>"
)


def main():
    settings = AppSettings()
    logger.remove()
    logger.add(lambda m: print(m, end=""), level=settings.log_level, format=LOG_FORMAT)

    context = VrfContext.from_settings(settings)
    SessionFactory = make_session_factory(settings.database_url) if settings.record_outcomes else None
    watcher = SolanaWatcher.create(settings, context, SessionFactory=SessionFactory)

    logger.info("---")
    logger.info("Running VRF handler with:")
    logger.info("Cluster: {}", settings.rpc_url)
    logger.info("Commitment: {}", settings.commitment)
    logger.info("Signer: {}", context.signer.pubkey)
    logger.info("VRF public key: {}", context.engine.public_key().hex())
    logger.info("Programs: {}", ", ".join(context.program_ids) or "-")
    logger.info("---")
    asyncio.run(watcher.run())


if __name__ == "__main__":
    main()
