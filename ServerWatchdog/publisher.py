"""
publisher.py

Finds this task's public IP, and points the server's DNS record at it.
The IP changes every time the task starts, so this runs on every startup.
"""

import json

import requests
from botocore.exceptions import BotoCoreError, ClientError

from .config import EnvVars
from .errors import AddressResolutionError
from .ticker import Ticker

METADATA_TIMEOUT = 5


class AddressPublisher:
    """
    Task -> ENI -> Public IP -> Route53.

    Right after the task starts, the ENI isn't always attached (or doesn't have
    its public IP yet), so the whole thing is retried a few times.
    """
    def __init__(
            self,
            env: EnvVars,
            ecs_client,
            ec2_client,
            route53_client,
            ticker: Ticker,
            retries: int = 5,
            retry_delay: float = 2.0,
        ) -> None:
        self.env = env
        self.ecs_client = ecs_client
        self.ec2_client = ec2_client
        self.route53_client = route53_client
        self.ticker = ticker
        self.retries = retries
        self.retry_delay = retry_delay

    def fetch_task_arn(self) -> str:
        """ Ask the ECS task metadata endpoint (v4) who we are """
        # https://docs.aws.amazon.com/AmazonECS/latest/developerguide/task-metadata-endpoint-v4.html
        if not self.env.ECS_CONTAINER_METADATA_URI_V4:
            raise AddressResolutionError("ECS_CONTAINER_METADATA_URI_V4 isn't set. Is this running in ECS?")
        response = requests.get(f"{self.env.ECS_CONTAINER_METADATA_URI_V4}/task", timeout=METADATA_TIMEOUT)
        response.raise_for_status()
        return response.json()["TaskARN"]

    def resolve_public_ip(self, task_arn: str) -> str:
        """ Follow the task's network attachment to its public IP """
        # https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ecs/client/describe_tasks.html
        task = self.ecs_client.describe_tasks(cluster=self.env.CLUSTER, tasks=[task_arn])["tasks"][0]
        # awsvpc tasks only have the one ENI attachment:
        details = task["attachments"][0]["details"]
        eni_id = next(d["value"] for d in details if d["name"] == "networkInterfaceId")
        # https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ec2/client/describe_network_interfaces.html
        eni = self.ec2_client.describe_network_interfaces(NetworkInterfaceIds=[eni_id])["NetworkInterfaces"][0]
        print(json.dumps({"TaskArn": task_arn, "NetworkInterfaceId": eni_id, "Association": eni.get("Association")}, default=str), flush=True)
        return eni["Association"]["PublicIp"]

    def update_dns(self, new_ip: str) -> None:
        """ Upsert the A record for the server's name """
        print(f"Changing '{self.env.SERVERNAME}' to new IP: {new_ip}", flush=True)
        # https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/route53/client/change_resource_record_sets.html
        self.route53_client.change_resource_record_sets(
            HostedZoneId=self.env.DNSZONE,
            ChangeBatch={
                'Changes': [{
                    'Action': 'UPSERT',
                    'ResourceRecordSet': {
                        'Name': self.env.SERVERNAME,
                        'Type': 'A',
                        'TTL': self.env.DNS_TTL,
                        'ResourceRecords': [{'Value': new_ip}],
                    }
                }]
            }
        )

    def publish(self) -> str:
        """
        Resolve the public IP and update DNS. Returns the IP.

        Raises AddressResolutionError once every retry is used up.
        """
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                task_arn = self.fetch_task_arn()
                new_ip = self.resolve_public_ip(task_arn)
                self.update_dns(new_ip)
                return new_ip
            # Not attached yet shows up as a missing key/index:
            except (BotoCoreError, ClientError, requests.RequestException, KeyError, IndexError, StopIteration) as e:
                last_error = e
                print(f"Attempt {attempt}/{self.retries} to publish the address failed: {e!r}", flush=True)
            if attempt < self.retries:
                self.ticker.sleep(self.retry_delay * attempt)
        raise AddressResolutionError(f"Couldn't publish the address after {self.retries} attempts.") from last_error
