"""
Distribution Key module (``copro_modules.distribution``).

Distribution keys (tantièmes) map each lot of a residence to a number of
shares; a lot's percentage under a key is its shares over the key total.
The public facade is ``copro_modules.distribution.service.DistributionService``.
"""

from copro_modules.distribution.models import DistributionKey, KeyUsage, LotShare

__all__ = ["DistributionKey", "KeyUsage", "LotShare"]
