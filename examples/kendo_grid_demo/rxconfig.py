"""Reflex configuration for the remote grid demo app."""

import reflex as rx

config = rx.Config(
    app_name="kendo_grid_demo",
    plugins=[rx.plugins.SitemapPlugin()],
)
