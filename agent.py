import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Load configuration from single .env file
load_dotenv("home-control-agent.env")

from connection.registration import RegistrationHandshake
from connection.session import StreamSession
from connection.store import ReadingStore
from connection.supervisor import ReconnectSupervisor
from sinks.menu_bar import MenuBar, TitleMode
from sources.base import SubscriptionSettings
from sources.home_control_http import HomeControlClient
from sources.home_control_ws import HomeControlWebSocket
from sources.poll import PollLoop

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def get_client() -> HomeControlClient:
    """Build the HTTP client from the environment with hard fail on misconfiguration"""
    host = os.getenv("HOME_CONTROL_HOST")
    if not host:
        logger.error("HomeControl: HOME_CONTROL_HOST not configured in home-control-agent.env")
        sys.exit(1)

    port = os.getenv("HOME_CONTROL_PORT", "8080")
    if not port.isdigit():
        logger.error(f"HomeControl: HOME_CONTROL_PORT is not a number: {port}")
        sys.exit(1)

    token = os.getenv("HOME_CONTROL_AUTH_TOKEN") or None
    logger.info(f"Using server: {host}:{port}")
    return HomeControlClient(host=host, port=int(port), auth_token=token)


def get_subscription_settings() -> SubscriptionSettings:
    """Subscription settings from HOME_CONTROL_SUBSCRIBE, defaults when unset"""
    value = os.getenv("HOME_CONTROL_SUBSCRIBE")
    if not value:
        return SubscriptionSettings()

    names = [name.strip() for name in value.split(",") if name.strip()]
    try:
        return SubscriptionSettings.from_names(names)
    except ValueError as e:
        logger.error(f"HomeControl: HOME_CONTROL_SUBSCRIBE: {e}")
        sys.exit(1)


async def main(args):
    client = get_client()
    store = ReadingStore()
    registration = RegistrationHandshake(client, settings=get_subscription_settings())
    websocket = HomeControlWebSocket(client.ws_url, auth_token=client.auth_token)

    supervisor = ReconnectSupervisor(
        lambda: StreamSession(websocket, store, registration),
        interval=args.reconnect_interval
    )
    poll = PollLoop(client, store, interval=args.poll_interval)
    menu_bar = MenuBar(store, title_mode=TitleMode(args.title_mode))

    try:
        # Run poll, push channel and menu bar in parallel
        async with asyncio.TaskGroup() as tg:
            tg.create_task(poll.run())
            tg.create_task(supervisor.run())
            tg.create_task(menu_bar.run())
    finally:
        menu_bar.close()
        await supervisor.aclose()
        await client.aclose()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Home Control menu bar agent")
    parser.add_argument(
        "--title-mode",
        type=str,
        default=TitleMode.SOLAR_POWER.value,
        choices=[mode.value for mode in TitleMode],
        help="Value shown in the menu bar title (default: solar-power)"
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=2.0,
        help="Seconds between latest-reading polls (default: 2.0)"
    )
    parser.add_argument(
        "--reconnect-interval",
        type=float,
        default=1.0,
        help="Seconds between push channel liveness checks (default: 1.0)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    return parser.parse_args(argv)


def cli():
    args = parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main(args))
    except KeyboardInterrupt:
        logger.info("Agent stopped by user.")


if __name__ == "__main__":
    cli()
