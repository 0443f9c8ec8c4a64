from __future__ import annotations

from functools import partial

from tomato.registry.steps import StepRegistry
from tomato.spec import FILESTORE
from tomato.steps.base import DOCSTRING

R = r'"([^"]*)"'


def download(resources, name: str, bucket: str, key: str, output_path: str) -> None:
    resources.filestore(name).download(bucket, key, output_path)


def upload(resources, name: str, target: str, content: str) -> None:
    resources.filestore(name).upload(target, content.encode("utf-8"))


def delete(resources, name: str, target: str) -> None:
    resources.filestore(name).delete(target)


def register_all(registry: StepRegistry) -> None:
    add = partial(registry.add, capability=FILESTORE)

    add(f"{R} download file from the folder {R} with the file name {R} and save as {R}", download,
        group="Files", description="Download an object to a local path",
        example='"s3" download file from the folder "reports" with the file name "daily.csv" and save as "/tmp/daily.csv"')
    add(f"{R} upload file {R} with content", upload, payload=DOCSTRING,
        group="Files", description="Upload the doc string to `bucket/key`",
        example='"s3" upload file "reports/daily.csv" with content')
    add(f"{R} delete file {R}", delete,
        group="Files", description="Delete `bucket/key`",
        example='"s3" delete file "reports/daily.csv"')
