"""
Main module for CDP Page.
Opens a URL in a running Chrome and optionally captures it.
"""
import argparse
import asyncio
import logging
from typing import Optional

from cdp_page.browser.browser import Browser
from cdp_page.utils.config import BrowserConfig
from cdp_page.utils.logging import configure_logging


async def main(
    url: str,
    config: BrowserConfig,
    screenshot: Optional[str] = None,
    pdf: Optional[str] = None,
    full_page: bool = False,
    wait_until: str = "load",
    timeout: Optional[float] = None,
) -> None:
    """
    Main function for CDP Page.

    Args:
        url: URL to navigate to
        config: Browser connection settings
        screenshot: Screenshot file path
        pdf: PDF file path
        full_page: Capture the whole scrollable page
        wait_until: Lifecycle milestone to wait for
        timeout: Navigation timeout in seconds
    """
    browser = Browser.from_config(config)
    try:
        await browser.connect()
        page = await browser.new_page()

        response = await page.goto(url, timeout=timeout, wait_until=wait_until)
        status = response.status if response is not None else "n/a"
        print(f"Page title: {await page.title()} (status {status})")

        if screenshot:
            await page.screenshot(path=screenshot, full_page=full_page)
            print(f"Screenshot saved to: {screenshot}")
        if pdf:
            await page.pdf(path=pdf)
            print(f"PDF saved to: {pdf}")
    finally:
        await browser.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CDP Page")
    parser.add_argument("url", help="URL to navigate to")
    parser.add_argument("--host", help="Chrome DevTools host")
    parser.add_argument("--port", type=int, help="Chrome DevTools port")
    parser.add_argument("--screenshot", help="Screenshot file path")
    parser.add_argument("--pdf", help="PDF file path")
    parser.add_argument("--full-page", action="store_true", help="Capture the whole scrollable page")
    parser.add_argument(
        "--wait-until",
        default="load",
        choices=["load", "domcontentloaded", "networkidle0", "networkidle2"],
        help="Navigation milestone to wait for",
    )
    parser.add_argument("--timeout", type=float, help="Navigation timeout in seconds")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--trace-protocol", action="store_true", help="Log every protocol message")
    return parser


def config_from_args(args: argparse.Namespace) -> BrowserConfig:
    """Build a config from CDP_* environment variables overridden by flags."""
    config = BrowserConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    return config


def run() -> None:
    args = build_parser().parse_args()

    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        trace_protocol=args.trace_protocol,
    )

    asyncio.run(
        main(
            args.url,
            config_from_args(args),
            args.screenshot,
            args.pdf,
            args.full_page,
            args.wait_until,
            args.timeout,
        )
    )


if __name__ == "__main__":
    run()
