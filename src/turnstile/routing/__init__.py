"""Routing — compiled route table and route groups.

Routes are declared during setup (directly or through a ``RouteGroup``)
and compiled, together with their middleware pipelines, when the app
freezes.
"""
