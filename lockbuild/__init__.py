"""lockbuild: 基于 pnpm lockfile 的离线可复现构建"""

__version__ = "0.3.0"
