"""
scripts/deploy_cluster.py

Deploy a cluster from a YAML document and print the resulting outputs as JSON.

    python scripts/deploy_cluster.py --config cluster.yaml --stack production
"""

import argparse
import asyncio
import json
import sys

from meshkube.context import DeployContext
from meshkube.errors import MeshkubeError
from meshkube.models.cluster_config import ClusterConfig
from meshkube.orchestrator import ClusterOrchestrator
from meshkube.settings import MeshkubeSettings
from meshkube.utils.logging_setup import configure_logging


async def run(args: argparse.Namespace, settings: MeshkubeSettings) -> int:
    with open(args.config, "r", encoding="utf-8") as f:
        config = ClusterConfig.from_yaml(f.read())

    ctx = DeployContext(project=args.project or config.metadata.name, stack=args.stack)
    orchestrator = ClusterOrchestrator(ctx, config, settings=settings)
    try:
        await orchestrator.deploy()
    except MeshkubeError as exc:
        print(f"Deployment failed: {exc}", file=sys.stderr)
        if args.cleanup_on_failure:
            await orchestrator.cleanup()
        return 1

    print(json.dumps(ctx.outputs, indent=2, default=str))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Deploy a multi-cloud Kubernetes cluster.")
    parser.add_argument("--config", required=True, help="Path to the cluster YAML document")
    parser.add_argument("--project", default=None)
    parser.add_argument("--stack", default="default")
    parser.add_argument("--cleanup-on-failure", action="store_true", default=False)
    args = parser.parse_args()

    settings = MeshkubeSettings()
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
