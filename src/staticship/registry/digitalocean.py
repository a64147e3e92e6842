"""DigitalOcean Container Registry adapter.

Authenticates with ``doctl registry login``, which writes docker credentials
for ``registry.digitalocean.com``. Daemon-built images are pushed with
``docker push``; OCI layouts are copied with ``skopeo``, which reads the same
credentials.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
from dataclasses import dataclass

from staticship.config import ENV_ACCESS_TOKEN
from staticship.errors import AuthenticationError, PushError, stderr_tail
from staticship.models import BuiltImage, Credentials, ImageRef, PushRecord

_PUSH_DIGEST = re.compile(r"digest:\s*(sha256:[0-9a-f]{64})")


@dataclass(slots=True)
class DigitalOceanRegistry:
    name: str = "digitalocean"
    doctl: str = "doctl"
    docker: str = "docker"
    skopeo: str = "skopeo"

    def login(self, credentials: Credentials) -> None:
        if not credentials.token:
            raise AuthenticationError(
                "Registry access token is missing.",
                hint=f"Expose the {ENV_ACCESS_TOKEN} secret to the pipeline.",
                context={"registry": self.name},
            )
        if shutil.which(self.doctl) is None:
            raise AuthenticationError(
                "DigitalOcean CLI (`doctl`) not found in PATH.",
                hint="Install doctl before running the publish pipeline.",
                context={"registry": self.name},
            )

        cmd = [self.doctl, "registry", "login"]
        result = subprocess.run(
            cmd,
            env={**os.environ, ENV_ACCESS_TOKEN: credentials.token},
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise AuthenticationError(
                "Registry login failed.",
                hint="Check that the access token is valid and the registry is reachable.",
                context={
                    "registry": self.name,
                    "registry_id": credentials.registry_id,
                    "returncode": str(result.returncode),
                    "stderr": stderr_tail(result.stderr),
                    "command": " ".join(cmd),
                },
            )

    def push(self, image: BuiltImage, ref: ImageRef) -> PushRecord:
        if image.kind == "docker":
            cmd = [self.docker, "push", str(ref)]
            tool = self.docker
        else:
            if image.layout_path is None:
                raise PushError(
                    "OCI image has no layout directory to push from.",
                    context={"ref": str(ref), "digest": image.digest},
                )
            cmd = [
                self.skopeo,
                "copy",
                "--preserve-digests",
                f"oci:{image.layout_path}:{ref.tag}",
                f"docker://{ref}",
            ]
            tool = self.skopeo

        if shutil.which(tool) is None:
            raise PushError(
                f"Push tool not found: {tool}",
                hint="Install docker (daemon images) or skopeo (OCI layouts).",
                context={"registry": self.name, "ref": str(ref)},
            )

        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise PushError(
                "Image push failed.",
                hint="Check registry connectivity, quota and repository permissions.",
                context={
                    "registry": self.name,
                    "ref": str(ref),
                    "returncode": str(result.returncode),
                    "stderr": stderr_tail(result.stderr),
                    "command": " ".join(cmd),
                },
            )

        digest = image.digest
        if image.kind == "docker":
            match = _PUSH_DIGEST.search(result.stdout or "")
            if match is not None:
                digest = match.group(1)
        return PushRecord(ref=ref, digest=digest)
