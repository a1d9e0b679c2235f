"""
Identity resolver: does a pipeline id currently exist remotely?

Kibana versions differ on GET of an unknown id: some answer a structured 404,
others fail hard with an error indistinguishable from a real one. Existence is
therefore answered from the full listing (exact, case-sensitive id match).
Do not replace this with GET-and-catch unless the deployed Kibana is known to
return a clean 404.

Listing failures propagate: reporting "absent" on a transport failure would
make the caller create over an existing pipeline.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..core.context import CallContext
from ..core.gateway import KibanaGateway
from .codec import PipelineCodec
from .models import PipelineIndexEntry


class IdentityResolver:
    def __init__(
        self,
        gateway: KibanaGateway,
        codec: PipelineCodec,
        *,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.gateway = gateway
        self.codec = codec
        self.log = logger or logging.getLogger("psync.resolver")

    def list(self, ctx: Optional[CallContext] = None) -> List[PipelineIndexEntry]:
        return self.codec.decode_index(self.gateway.list_pipelines(ctx))

    def find(self, pipeline_id: str, ctx: Optional[CallContext] = None) -> Optional[PipelineIndexEntry]:
        entries = self.list(ctx)
        for entry in entries:
            if entry.id == pipeline_id:
                return entry
        self.log.debug("pipeline '%s' not in listing (%d entries)", pipeline_id, len(entries))
        return None

    def exists(self, pipeline_id: str, ctx: Optional[CallContext] = None) -> bool:
        return self.find(pipeline_id, ctx) is not None
