"""
Form interaction example for CDP Page.
"""
import asyncio
import logging

from cdp_page import Browser, BrowserConfig

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main():
    """Form interaction example using saucedemo.com."""
    async with Browser.from_config(BrowserConfig.from_env()) as browser:
        page = await browser.new_page()

        url = "https://www.saucedemo.com/"
        logger.info(f"Navigating to {url}")
        await page.goto(url)

        await page.type("#user-name", "standard_user")
        await page.type("#password", "secret_sauce")

        # Start waiting before the click that triggers the navigation
        navigation = asyncio.ensure_future(page.wait_for_navigation())
        await page.click("#login-button")
        await navigation

        logger.info(f"Current URL after login: {page.url}")
        assert "inventory.html" in page.url, "Login failed"

        items = await page.query_selector_all_eval(
            ".inventory_item_name", "nodes => nodes.map(n => n.textContent)"
        )
        logger.info(f"Found {len(items)} products")

        await page.screenshot(path="inventory.png", full_page=True)
        logger.info("Screenshot saved to inventory.png")


if __name__ == "__main__":
    asyncio.run(main())
