"""依赖来源解析、拉取与内容存储

- models.py: FetchDirective / StoreEntry
- integrity.py: SRI 解析与校验
- resolver.py: resolution -> FetchDirective
- fetcher.py: tarball / git 拉取，批量并发拉取
- store.py: 内容寻址存储与 SingleFlight
"""

from lockbuild.core.dep.fetcher import GitFetcher, PackageFetcher, TarballFetcher
from lockbuild.core.dep.models import FetchDirective, StoreEntry
from lockbuild.core.dep.resolver import SourceResolver
from lockbuild.core.dep.store import ContentStore, SingleFlight

__all__ = [
    "ContentStore",
    "FetchDirective",
    "GitFetcher",
    "PackageFetcher",
    "SingleFlight",
    "SourceResolver",
    "StoreEntry",
    "TarballFetcher",
]
