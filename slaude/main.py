"""Entry point: load config, warn about suspicious settings, serve the HTTP API."""

from __future__ import annotations

import argparse
import logging

from slaude.api.app import create_app
from slaude.config.loader import check_config, get_config
from slaude.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Chat completions relayed through Slack")
    parser.add_argument("--config", help="Path to a YAML config file")
    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(config.logging.level, use_json=config.logging.use_json)
    for warning in check_config(config):
        logger.warning(warning)

    app = create_app(config)
    logger.info("slaude is running at http://%s:%s", config.server.host, config.server.port)
    app.run(host=config.server.host, port=config.server.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
