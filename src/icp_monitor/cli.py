import asyncio

import click

from . import __version__
from .config import AppConfig, BookingConfig, ConfigManager, FetchMode
from .errors import ConfigError, StoreError
from .store import SubscriberStore

config_dir_option = click.option(
    "--config-dir",
    type=click.Path(),
    default=None,
    help="Directory holding config.json, .env and users.json"
)


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    raise SystemExit(1)


def _load(config_manager: ConfigManager) -> AppConfig:
    try:
        return config_manager.load()
    except ConfigError as e:
        _fail(str(e))


def _mask(secret: str) -> str:
    if not secret:
        return "(not set)"
    if len(secret) <= 15:
        return "***"
    return f"{secret[:10]}...{secret[-5:]}"


@click.group(name="icp-monitor", help="ICP appointment availability monitor")
def cli():
    pass


@cli.command(help="Show version")
def version():
    click.echo(f"icp-monitor {__version__}")


@cli.command(help="Create config.json interactively")
@config_dir_option
def init(config_dir):
    config_manager = ConfigManager(config_dir)

    click.echo("🚀 ICP monitor - initial configuration\n")

    if config_manager.exists():
        existing = config_manager.load_raw() or {}
        click.echo("Existing configuration found:")
        click.echo(f"  Target URL: {existing.get('target_url', '')}")
        click.echo(f"  Bot Token: {_mask(existing.get('bot_token', ''))}\n")
        if not click.confirm("Overwrite it?", default=False):
            click.echo("Cancelled")
            return

    click.echo("1. Telegram Bot Token (from @BotFather)")
    bot_token = click.prompt("   Bot Token", type=str)

    click.echo("\n2. Page to monitor")
    target_url = click.prompt("   Target URL", type=str)

    click.echo("\n3. Fetch mode")
    fetch_mode = click.prompt(
        "   http (plain request) or browser (Chromium)",
        type=click.Choice([m.value for m in FetchMode]),
        default=FetchMode.HTTP.value
    )

    click.echo("\n4. Proxy (optional)")
    proxy_url = click.prompt("   Proxy URL (empty to skip)", type=str, default="")

    click.echo("\n5. Check interval")
    fetch_interval = click.prompt("   Seconds", type=int, default=60)

    click.echo("\n6. Admin Chat ID (optional, receives alerts)")
    admin_chat_id_str = click.prompt("   Chat ID (empty to skip)", type=str, default="")
    admin_chat_id = int(admin_chat_id_str) if admin_chat_id_str else None

    booking = BookingConfig()
    if click.confirm("\n7. Configure applicant data for automatic booking?", default=False):
        booking = BookingConfig(
            province_code=click.prompt("   Province option value", type=str),
            operation_code=click.prompt("   Procedure option value", type=str),
            doc_value=click.prompt("   NIE / passport", type=str),
            full_name=click.prompt("   Full name", type=str),
            birth_year=click.prompt("   Year of birth", type=str),
            country=click.prompt("   Nationality option value", type=str),
            phone=click.prompt("   Phone", type=str),
            email=click.prompt("   Email", type=str),
            captcha_auto=click.confirm("   Solve captcha with 2captcha?", default=False),
        )
        if booking.captcha_auto:
            booking = booking.model_copy(
                update={"captcha_api_key": click.prompt("   2captcha API key", type=str)}
            )

    config = AppConfig(
        bot_token=bot_token,
        target_url=target_url,
        fetch_mode=FetchMode(fetch_mode),
        proxy_url=proxy_url or None,
        fetch_interval=fetch_interval,
        admin_chat_id=admin_chat_id,
        booking=booking
    )
    config_manager.save(config)

    click.echo(f"\n✅ Configuration saved to: {config_manager.config_path}")
    click.echo("\nStart the service with 'icp-monitor run'")


@cli.command(help="Show the effective configuration")
@config_dir_option
def config(config_dir):
    config_manager = ConfigManager(config_dir)
    cfg = _load(config_manager)

    click.echo("📋 Current configuration:\n")
    click.echo(f"  Target URL: {cfg.target_url or '(not set)'}")
    click.echo(f"  Bot Token: {_mask(cfg.bot_token)}")
    click.echo(f"  Fetch mode: {cfg.fetch_mode.value}")
    click.echo(f"  Proxy: {cfg.proxy_url or '(none)'}")
    click.echo(f"  Interval: {cfg.fetch_interval}s, retries: {cfg.fetch_retries} x {cfg.retry_delay}s")
    click.echo(f"  Available marker: {cfg.available_marker}")
    if cfg.admin_chat_id:
        click.echo(f"  Admin Chat ID: {cfg.admin_chat_id}")

    missing = cfg.booking.missing_fields()
    click.echo(f"\n  Booking: {'ready' if not missing else 'missing ' + ', '.join(missing)}")
    click.echo(f"  Captcha: {'2captcha' if cfg.booking.captcha_auto else 'manual'}")

    click.echo(f"\n  Config file: {config_manager.config_path}")
    click.echo(f"  Subscribers: {config_manager.subscribers_path(cfg)}")


@cli.command(help="List subscribed chat ids")
@config_dir_option
def subscribers(config_dir):
    config_manager = ConfigManager(config_dir)
    cfg = _load(config_manager)
    try:
        store = SubscriberStore(config_manager.subscribers_path(cfg)).load()
    except StoreError as e:
        _fail(str(e))

    click.echo(f"👥 {len(store)} subscriber(s)")
    for chat_id in store:
        click.echo(f"  {chat_id}")


@cli.command(help="Fetch the page once and print available entries")
@config_dir_option
def check(config_dir):
    from .app import Application
    from .errors import MonitorError

    config_manager = ConfigManager(config_dir)
    cfg = _load(config_manager)
    if not cfg.target_url:
        _fail("target_url is not configured")

    store = SubscriberStore(config_manager.subscribers_path(cfg))
    app = Application(cfg, store)
    try:
        entries = app.fetch_entries()
    except MonitorError as e:
        _fail(f"check failed: {e}")
    finally:
        app.source.close()

    if not entries:
        click.echo("📭 No available appointments")
        return
    click.echo(f"📅 {len(entries)} available:")
    for entry in entries:
        click.echo(f"  {entry.city} | {entry.building} | {entry.dates}")


@cli.command(help="Run the automatic booking form once")
@config_dir_option
@click.option("--notify", is_flag=True, help="Send the outcome to the admin chat")
def book(config_dir, notify):
    from .app import setup_logging
    from .booking import BookingDriver

    config_manager = ConfigManager(config_dir)
    setup_logging(config_manager.log_dir())
    cfg = _load(config_manager)

    try:
        result = BookingDriver(cfg).run()
    except ConfigError as e:
        _fail(str(e))

    if notify and cfg.admin_chat_id and cfg.bot_token:
        from .bot.bot import send_once
        asyncio.run(send_once(
            cfg.bot_token,
            cfg.admin_chat_id,
            f"Запись ICP: {result.state.value}\n{result.message}",
            proxy_url=cfg.proxy_url
        ))

    if result.success:
        click.echo(f"🎉 {result.message}")
    else:
        click.echo(f"⚠️ {result.state.value}: {result.message}")
        raise SystemExit(1)


@cli.command(help="Start the monitoring bot")
@config_dir_option
def run(config_dir):
    from .app import Application, setup_logging

    config_manager = ConfigManager(config_dir)
    cfg = _load(config_manager)
    try:
        cfg.require_monitoring()
    except ConfigError as e:
        _fail(str(e))

    log_dir = config_manager.log_dir()
    setup_logging(log_dir)

    try:
        store = SubscriberStore(config_manager.subscribers_path(cfg)).load()
    except StoreError as e:
        _fail(str(e))

    click.echo("🚀 Starting ICP monitor...")
    click.echo(f"   Target: {cfg.target_url}")
    click.echo(f"   Mode: {cfg.fetch_mode.value}, every {cfg.fetch_interval}s")
    click.echo(f"   Logs: {log_dir}\n")

    Application(cfg, store).run()


if __name__ == "__main__":
    cli()
