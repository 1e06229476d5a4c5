"""
Interactive login through a real browser.

Adapters describe their login page with a LoginForm; the driver fills it in,
submits, and hands back the cookies and user agent the platform accepted.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from autovagas.core.config import AppConfig, get_config, random_user_agent
from autovagas.core.errors import LoginFailed
from autovagas.core.models import SessionCredentials

logger = logging.getLogger(__name__)


@dataclass
class LoginForm:
    url: str
    email_selector: str
    password_selector: str
    submit_selector: str
    # Some platforms only reveal the password field after an extra click.
    reveal_password_selector: Optional[str] = None
    failure_url_markers: Tuple[str, ...] = ("login",)
    failure_text_markers: Tuple[str, ...] = ()
    locale: str = "pt-BR"
    extra_headers: dict = field(default_factory=dict)


class PlaywrightLoginDriver:
    """Runs a LoginForm in headless Chromium."""

    def __init__(self, app_config: Optional[AppConfig] = None):
        self.config = app_config or get_config()

    async def login(self, form: LoginForm, email: str, password: str,
                    user_agent: Optional[str] = None) -> SessionCredentials:
        user_agent = user_agent or random_user_agent()
        timeout = self.config.LOGIN_TIMEOUT_MS

        async with async_playwright() as pw:
            browser = await pw.chromium.launch(
                headless=self.config.BROWSER_HEADLESS,
                args=[
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-blink-features=AutomationControlled",
                ],
            )
            try:
                context = await browser.new_context(user_agent=user_agent, locale=form.locale)
                page = await context.new_page()
                await page.goto(form.url, wait_until="networkidle", timeout=timeout)

                await page.fill(form.email_selector, email)
                if form.reveal_password_selector:
                    await page.click(form.reveal_password_selector)
                    await page.wait_for_selector(form.password_selector, timeout=timeout)
                await page.fill(form.password_selector, password)

                async with page.expect_navigation(wait_until="networkidle", timeout=timeout):
                    await page.click(form.submit_selector)

                current_url = page.url.lower()
                content = await page.content()
                if any(marker in current_url for marker in form.failure_url_markers):
                    raise LoginFailed(
                        "Login failed. Please check your credentials or solve the CAPTCHA manually."
                    )
                if any(marker in content for marker in form.failure_text_markers):
                    raise LoginFailed("Login failed: the platform rejected the credentials.")

                cookies = await context.cookies()
            except PlaywrightTimeoutError as e:
                raise LoginFailed(f"Login timed out: {e}") from e
            finally:
                await browser.close()

        logger.info(f"Browser login succeeded at {form.url} ({len(cookies)} cookies)")
        return SessionCredentials(
            cookies=cookies,
            headers=dict(form.extra_headers),
            user_agent=user_agent,
        )
