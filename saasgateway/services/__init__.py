# -*- coding: utf-8 -*-
"""Location: ./saasgateway/services/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Services Package.
Exposes the gateway's shared services.
"""

from saasgateway.services.logging_service import logging_service, LoggingService

__all__ = ["LoggingService", "logging_service"]
