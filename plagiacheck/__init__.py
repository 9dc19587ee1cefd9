# -*- coding: utf-8 -*-
"""Plagiacheck billing service: checkout, redirects, Stripe webhooks and subscription reconciliation."""

__version__ = "1.0.0"
