"""
                Bistro Boss API

Restaurant ordering backend: menu browsing, carts, role administration,
payment intents and post-payment reconciliation, revenue statistics.

Author: Bistro Boss Team
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Bistro Boss Team"
