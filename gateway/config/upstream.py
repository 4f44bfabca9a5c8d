# This software is provided to the United States Government (USG) with SBIR Data Rights as defined at Federal Acquisition Regulation 52.227-14, "Rights in Data-SBIR Program" (May 2014) SBIR Rights Notice (Dec 2023-2024) These SBIR data are furnished with SBIR rights under Contract No. H9241522D0001. For a period of 19 years, unless extended in accordance with FAR 27.409(h), after acceptance of all items to be delivered under this contract, the Government will use these data for Government purposes only, and they shall not be disclosed outside the Government (including disclosure for procurement purposes) during such period without permission of the Contractor, except that, subject to the foregoing use and disclosure prohibitions, these data may be disclosed for use by support Contractors. After the protection period, the Government has a paid-up license to use, and to authorize others to use on its behalf, these data for Government purposes, but is relieved of all disclosure prohibitions and assumes no liability for unauthorized use of these data by third parties. This notice shall be affixed to any reproductions of these data, in whole or in part.
from __future__ import annotations
from pydantic import HttpUrl, model_validator
from gateway.config._base import Base


class Upstream(Base):
    # Remote GraphQL endpoint
    UPSTREAM_URL: HttpUrl = HttpUrl("https://countries.trevorblades.com/graphql")
    UPSTREAM_TIMEOUT: float | None = 30.0
    # Schema refresh, in seconds
    SCHEMA_REFRESH_INTERVAL: float = 5.0
    # Response cache
    CACHE_TTL: float | None = None
    CACHE_MAX_ENTRIES: int = 1000
    CACHE_ANONYMOUS: bool = True

    @model_validator(mode="after")
    def valid_intervals(self):
        if self.SCHEMA_REFRESH_INTERVAL <= 0:
            raise ValueError("SCHEMA_REFRESH_INTERVAL must be positive")
        if self.UPSTREAM_TIMEOUT is not None and self.UPSTREAM_TIMEOUT <= 0:
            self.UPSTREAM_TIMEOUT = None
        if self.CACHE_MAX_ENTRIES <= 0:
            raise ValueError("CACHE_MAX_ENTRIES must be positive")
        return self


upstream = Upstream()
