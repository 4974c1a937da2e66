"""Offline fallback page served for navigations with no network and no cache."""

import html

from ..config import Config

OFFLINE_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <meta name="theme-color" content="{theme_color}">
    <title>Offline | {name}</title>
    <style>
        body {{ margin: 0; min-height: 100vh; display: flex; align-items: center; justify-content: center;
               font-family: Montserrat, Helvetica, Arial, sans-serif; background: {background_color};
               color: {theme_color}; text-align: center; }}
        h1 {{ font-family: "Playfair Display", Georgia, serif; font-weight: 500; }}
        button {{ margin-top: 1rem; padding: 0.75rem 2rem; border: 1px solid {theme_color};
                 background: transparent; color: inherit; cursor: pointer; }}
    </style>
</head>
<body>
    <main>
        <h1>You are offline</h1>
        <p>We can't reach {name} right now. Pages you have visited are still available.</p>
        <p>Bookings and messages sent while offline will be delivered once you reconnect.</p>
        <button type="button" onclick="window.location.reload()">Try again</button>
    </main>
</body>
</html>
"""


def render_offline_page(config: Config) -> str:
    site = config.site
    return OFFLINE_PAGE_TEMPLATE.format(
        name=html.escape(site.name),
        theme_color=html.escape(site.theme_color),
        background_color=html.escape(site.background_color),
    )
