import json
import sys

from adapter_logger import AdapterLogger


def main(spec_raw: str):
    logger = AdapterLogger("metric").logger

    spec = json.loads(spec_raw)

    logger.info("Starting metric script")
    resource = spec['resource']
    metadata = resource['metadata']
    current_replicas = resource['spec'].get('replicas') or 0

    metrics_result = json.dumps(
        {
            "current_replicas": current_replicas,
            "name": metadata['name'],
            "namespace": metadata.get('namespace', 'default')
        }
    )
    logger.info(metrics_result)

    sys.stdout.write(metrics_result)


if __name__ == "__main__":
    main(sys.stdin.read())
