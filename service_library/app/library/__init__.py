"""
Library gateway facade.
"""

from .service import HomepageData, LibraryGateway

__all__ = ["HomepageData", "LibraryGateway"]
