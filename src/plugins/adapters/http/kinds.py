"""
Built-in resource kinds served by the HTTP adapter.

- queues: message queues; an update without attributes is ignored
- roles: access roles; region-less, the role path is fixed at creation
- buckets: object storage buckets; the location is fixed at creation
"""

import logging
from typing import Any, Dict

from errors import ValidationError
from plugins.adapters.http.adapter import HTTPResourceAdapter
from plugins.base import ManagedResource

logger = logging.getLogger(__name__)

POLICY_SCHEMA = {
    "type": "object",
    "required": ["statement"],
    "properties": {
        "id": {"type": "string"},
        "version": {"type": "string"},
        "statement": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["effect", "action"],
                "properties": {
                    "sid": {"type": "string"},
                    "effect": {"enum": ["Allow", "Deny"]},
                    "action": {
                        "anyOf": [
                            {"type": "string"},
                            {"type": "array", "items": {"type": "string"}},
                        ]
                    },
                    "principal": {"type": ["string", "object"]},
                    "resource": {
                        "anyOf": [
                            {"type": "string"},
                            {"type": "array", "items": {"type": "string"}},
                        ]
                    },
                },
            },
        },
    },
}

TAGS_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["key", "value"],
        "properties": {"key": {"type": "string"}, "value": {"type": "string"}},
    },
}


class QueueAdapter(HTTPResourceAdapter):
    """Message queues."""

    resource_kind = "queues"
    spec_schema = {
        "type": "object",
        "properties": {
            "delaySeconds": {"type": ["integer", "string"]},
            "maximumMessageSize": {"type": ["integer", "string"]},
            "messageRetentionPeriod": {"type": ["integer", "string"]},
            "receiveMessageWaitTimeSeconds": {"type": ["integer", "string"]},
            "visibilityTimeout": {"type": ["integer", "string"]},
            "fifoQueue": {"type": ["boolean", "string"]},
            "redrivePolicy": {
                "type": "object",
                "properties": {
                    "deadLetterTargetArn": {"type": "string"},
                    "maxReceiveCount": {"type": ["integer", "string"]},
                },
            },
            "policy": POLICY_SCHEMA,
        },
    }

    def should_apply(self, resource: ManagedResource, current_spec: Dict[str, Any]) -> bool:
        # Attributes are copied at creation time; afterwards an empty spec
        # cannot mean "reset to defaults"
        if not resource.spec:
            logger.warning(
                f"[{self.kind}/{resource.name}]: Ignoring update without attributes"
            )
            return False
        return super().should_apply(resource, current_spec)


class RoleAdapter(HTTPResourceAdapter):
    """Access roles with inline and attached policies."""

    resource_kind = "roles"
    # Roles are region-less; the region only selects the API endpoint
    default_region = "us-east-1"
    immutable_fields = (("path", "/"),)
    spec_schema = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "pattern": "^/(.*/)?$"},
            "description": {"type": "string"},
            "assumeRolePolicyDocument": POLICY_SCHEMA,
            "policies": {"type": "array", "items": POLICY_SCHEMA},
            "policyArns": {"type": "array", "items": {"type": "string"}},
            "tags": TAGS_SCHEMA,
        },
    }


class BucketAdapter(HTTPResourceAdapter):
    """Object storage buckets."""

    resource_kind = "buckets"
    immutable_fields = (("createBucketConfiguration.locationConstraint", "us-west-1"),)
    spec_schema = {
        "type": "object",
        "properties": {
            "bucket": {"type": "string"},
            "acl": {
                "enum": [
                    "private",
                    "public-read",
                    "public-read-write",
                    "authenticated-read",
                    "aws-exec-read",
                    "log-delivery-write",
                ]
            },
            "createBucketConfiguration": {
                "type": "object",
                "properties": {"locationConstraint": {"type": "string"}},
            },
            "policy": POLICY_SCHEMA,
            "loggingConfiguration": {
                "type": "object",
                "properties": {
                    "destinationBucketName": {"type": "string"},
                    "logFilePrefix": {"type": "string"},
                },
            },
            "publicAccessBlockConfiguration": {
                "type": "object",
                "additionalProperties": {"type": "boolean"},
            },
            "versioningConfiguration": {
                "type": "object",
                "properties": {"status": {"enum": ["Enabled", "Suspended"]}},
            },
            "lifecycleConfiguration": {"type": "object"},
            "bucketEncryption": {"type": "object"},
            "tags": TAGS_SCHEMA,
        },
    }

    def validate(self, resource: ManagedResource) -> None:
        super().validate(resource)
        bucket = resource.spec.get("bucket")
        if bucket and bucket != resource.name:
            raise ValidationError(
                f"Inconsistent bucket name in configuration: "
                f"{resource.name} !== {bucket}"
            )

    def immutable_value_matches(self, path: str, current: Any, desired: Any) -> bool:
        if current == desired:
            return True
        # 'EU' is an alias accepted for any EU region
        if current and desired == "EU":
            return str(current).startswith("eu-")
        return False


BUILTIN_ADAPTERS = [QueueAdapter, RoleAdapter, BucketAdapter]
