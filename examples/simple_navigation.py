"""
Simple navigation example for CDP Page.
"""
import asyncio
import logging

from cdp_page import Browser, BrowserConfig
from cdp_page.browser import PageEvent

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main():
    """Simple navigation example."""
    async with Browser.from_config(BrowserConfig.from_env()) as browser:
        logger.info("Browser connected")

        page = await browser.new_page()
        page.on(PageEvent.CONSOLE, lambda message: logger.info(f"console.{message.type}: {message.text}"))

        for url in ("https://example.com", "https://www.example.org"):
            logger.info(f"Navigating to {url}")
            response = await page.goto(url, wait_until="networkidle2")
            logger.info(f"Loaded {page.url} ({response.status if response else 'no response'})")
            logger.info(f"Title: {await page.title()}")

        await page.go_back()
        logger.info(f"Back at {page.url}")


if __name__ == "__main__":
    asyncio.run(main())
