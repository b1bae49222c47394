# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/kube/client.py
from __future__ import annotations

from dataclasses import dataclass

import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from mcverify.config.models import KubeSettings

# Everything a single API call raises when the server or the connection fails
API_ERRORS = (ApiException, urllib3.exceptions.HTTPError, OSError)


@dataclass(frozen=True)
class KubeClients:
    """API handles built once per run and handed to whoever needs them."""

    api_client: client.ApiClient
    core: client.CoreV1Api
    custom: client.CustomObjectsApi


def build_clients(settings: KubeSettings) -> KubeClients:
    """
    Build clients from the configured kubeconfig/context, or from the pod's
    service account when running in-cluster. Nothing is stored globally.
    """
    if settings.in_cluster:
        cfg = client.Configuration()
        config.load_incluster_config(client_configuration=cfg)
        api_client = client.ApiClient(configuration=cfg)
    else:
        api_client = config.new_client_from_config(
            config_file=settings.kubeconfig,
            context=settings.context,
        )

    return KubeClients(
        api_client=api_client,
        core=client.CoreV1Api(api_client),
        custom=client.CustomObjectsApi(api_client),
    )
