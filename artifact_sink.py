"""Where failure screenshots end up: an S3 bucket, or just the local screenshots folder"""

from pathlib import Path

import boto3


class S3ArtifactSink:
    def __init__(self, bucket: str, prefix: str = 'failures/', client=None):
        self.bucket = bucket
        self.prefix = prefix
        self._client = client or boto3.client('s3')

    def upload(self, local_path, destination_name: str, mime_type: str) -> str:
        """
        Upload a file to the artifact bucket

        Args:
            local_path: File to upload
            destination_name: Object name below the configured prefix
            mime_type: Content type stored with the object

        Returns:
            The s3:// URI of the uploaded object
        """
        key = f"{self.prefix}{destination_name}"
        self._client.upload_file(str(local_path), self.bucket, key, ExtraArgs={'ContentType': mime_type})
        uri = f"s3://{self.bucket}/{key}"
        print(f"📤 Uploaded {destination_name} to {uri}")
        return uri


class LocalArtifactSink:
    """Leaves the artifact where it was written"""

    def upload(self, local_path, destination_name: str, mime_type: str) -> str:
        path = Path(local_path).resolve()
        print(f"📸 Screenshot saved: {path} ({mime_type})")
        return str(path)


def sink_from_config(config):
    if config.artifact_bucket:
        return S3ArtifactSink(config.artifact_bucket, config.artifact_prefix)
    return LocalArtifactSink()
