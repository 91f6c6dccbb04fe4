import asyncio
import unittest
from urllib.parse import parse_qs, urlparse

import httpx

from fakes import settle

from app.services.identity.base import (
    CANCELLED_POPUP_REQUEST,
    INTERNAL_ERROR,
    OPERATION_NOT_ALLOWED,
    POPUP_BLOCKED,
    POPUP_CLOSED_BY_USER,
    UNAUTHORIZED_DOMAIN,
    IdentityProviderError,
)
from app.services.identity.github_provider import GithubOAuthIdentityProvider


def github_handler(request):
    if request.url.path == "/login/oauth/access_token":
        return httpx.Response(200, json={"access_token": "gho_abc", "scope": "repo"})
    if request.url.path == "/user":
        return httpx.Response(
            200,
            json={"id": 42, "login": "octo", "name": "Octo Cat", "email": None, "avatar_url": "https://a/42"},
        )
    return httpx.Response(404)


class TestGithubOAuthIdentityProvider(unittest.IsolatedAsyncioTestCase):
    def make_provider(self, open_browser=None, client_id="cid", timeout=5.0, handler=github_handler):
        self.opened = []

        def default_open(url):
            self.opened.append(url)
            return True

        return GithubOAuthIdentityProvider(
            client_id=client_id,
            client_secret="secret",
            redirect_uri="http://localhost:8000/api/auth/github/callback",
            scopes=["repo"],
            api_url="https://api.github.test",
            timeout=timeout,
            open_browser=open_browser or default_open,
            transport=httpx.MockTransport(handler),
        )

    async def wait_for_pending(self, provider):
        for _ in range(50):
            if provider.pending_state:
                return provider.pending_state
            await asyncio.sleep(0)
        self.fail("sign-in never became pending")

    async def test_full_sign_in_flow(self):
        provider = self.make_provider()
        seen = []
        provider.on_identity_change(seen.append)

        sign_in = asyncio.create_task(provider.sign_in_interactive())
        state = await self.wait_for_pending(provider)

        query = parse_qs(urlparse(self.opened[0]).query)
        self.assertEqual(query["state"], [state])
        self.assertEqual(query["client_id"], ["cid"])

        await provider.complete_authorization(state, code="abc")
        result = await sign_in

        self.assertEqual(result.identity.uid, "42")
        self.assertEqual(result.identity.display_name, "Octo Cat")
        self.assertEqual(result.credential.access_token, "gho_abc")
        self.assertEqual(seen, [None, result.identity])
        self.assertIsNone(provider.pending_state)

    async def test_user_denied_access(self):
        provider = self.make_provider()
        sign_in = asyncio.create_task(provider.sign_in_interactive())
        state = await self.wait_for_pending(provider)

        await provider.complete_authorization(state, error="access_denied")
        with self.assertRaises(IdentityProviderError) as ctx:
            await sign_in
        self.assertEqual(ctx.exception.code, POPUP_CLOSED_BY_USER)

    async def test_redirect_mismatch(self):
        provider = self.make_provider()
        sign_in = asyncio.create_task(provider.sign_in_interactive())
        state = await self.wait_for_pending(provider)

        await provider.complete_authorization(state, error="redirect_uri_mismatch")
        with self.assertRaises(IdentityProviderError) as ctx:
            await sign_in
        self.assertEqual(ctx.exception.code, UNAUTHORIZED_DOMAIN)

    async def test_browser_could_not_open(self):
        provider = self.make_provider(open_browser=lambda url: False)
        with self.assertRaises(IdentityProviderError) as ctx:
            await provider.sign_in_interactive()
        self.assertEqual(ctx.exception.code, POPUP_BLOCKED)
        self.assertIsNone(provider.pending_state)

    async def test_second_concurrent_sign_in(self):
        provider = self.make_provider()
        first = asyncio.create_task(provider.sign_in_interactive())
        await self.wait_for_pending(provider)

        with self.assertRaises(IdentityProviderError) as ctx:
            await provider.sign_in_interactive()
        self.assertEqual(ctx.exception.code, CANCELLED_POPUP_REQUEST)

        first.cancel()
        await settle()

    async def test_unconfigured_provider(self):
        provider = self.make_provider(client_id=None)
        with self.assertRaises(IdentityProviderError) as ctx:
            await provider.sign_in_interactive()
        self.assertEqual(ctx.exception.code, OPERATION_NOT_ALLOWED)

    async def test_timeout_counts_as_closed_window(self):
        provider = self.make_provider(timeout=0.01)
        with self.assertRaises(IdentityProviderError) as ctx:
            await provider.sign_in_interactive()
        self.assertEqual(ctx.exception.code, POPUP_CLOSED_BY_USER)

    async def test_malformed_github_responses_fail_the_sign_in(self):
        def html_token_page(request):
            return httpx.Response(200, text="<html>not json</html>")

        def user_without_id(request):
            if request.url.path == "/user":
                return httpx.Response(200, json={"login": "octo"})
            return github_handler(request)

        for handler in (html_token_page, user_without_id):
            with self.subTest(handler=handler.__name__):
                provider = self.make_provider(handler=handler)
                sign_in = asyncio.create_task(provider.sign_in_interactive())
                state = await self.wait_for_pending(provider)

                with self.assertRaises(IdentityProviderError) as callback:
                    await provider.complete_authorization(state, code="abc")
                self.assertEqual(callback.exception.code, INTERNAL_ERROR)

                # Resolved at once rather than after the sign-in timeout
                with self.assertRaises(IdentityProviderError) as ctx:
                    await asyncio.wait_for(sign_in, timeout=1)
                self.assertEqual(ctx.exception.code, INTERNAL_ERROR)
                self.assertIsNone(provider.pending_state)

    async def test_unknown_state_is_rejected(self):
        provider = self.make_provider()
        with self.assertRaises(IdentityProviderError):
            await provider.complete_authorization("bogus", code="abc")

    async def test_sign_out_notifies_listeners(self):
        provider = self.make_provider()
        seen = []
        unsubscribe = provider.on_identity_change(seen.append)

        sign_in = asyncio.create_task(provider.sign_in_interactive())
        await provider.complete_authorization(await self.wait_for_pending(provider), code="abc")
        await sign_in
        await provider.sign_out()
        unsubscribe()
        await provider.sign_out()

        self.assertEqual(len(seen), 3)
        self.assertIsNone(seen[-1])


if __name__ == "__main__":
    unittest.main()
