"""Manifest rendering on top of Jinja2 templates.

Rendering is deterministic: identical context and volume table always give
byte-identical output. Nothing time- or randomness-dependent is added here.
"""
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    UndefinedError,
)

from sitebox.core.config import SiteboxConfig
from sitebox.core.errors import RenderError
from sitebox.core.logger import get_logger
from sitebox.core.params import SiteParameters
from sitebox.manifest.descriptors import VolumeDescriptor, build_services

logger = get_logger(__name__)

MANIFEST_TEMPLATE = "docker-compose.yml.j2"

REQUIRED_CONTEXT = (
    "site_url",
    "site_prefix",
    "php_version",
    "is_ssl",
    "nohttps",
    "alias_domains",
    "cache_host",
    "db_host",
    "platform",
    "images",
    "environment",
    "site_network",
    "frontend_network",
    "backend_network",
)

VolumeTable = Mapping[str, List[VolumeDescriptor]]


def volume_name(site_prefix: str, name: str) -> str:
    """Docker volume name for a site volume."""
    return f"{site_prefix}_{name}"


def php_image(images: Mapping[str, str], php_version: str) -> str:
    suffix = '' if php_version == 'latest' else php_version
    return images['php'].format(version=suffix)


def manifest_context(
    site: SiteParameters,
    platform: str,
    config: SiteboxConfig,
    **filters: Any,
) -> Dict[str, Any]:
    """Build the template context for a site's compose manifest.

    Args:
        site: Validated site parameters
        platform: Platform the manifest is rendered for
        config: Runtime configuration (images, shared network names)
        **filters: Overrides applied last (e.g. ``nohttps=True``)
    """
    images = dict(config.images)
    images['php'] = php_image(config.images, site.php_version)
    context = {
        'site_url': site.site_url,
        'site_prefix': site.site_prefix,
        'php_version': str(site.php_version),
        'is_ssl': site.is_ssl,
        'nohttps': not site.is_ssl,
        'alias_domains': ','.join(site.extra_domains),
        'cache_host': site.cache_host,
        'db_host': site.database.host if site.database else '',
        'platform': platform,
        'images': images,
        'environment': OrderedDict(
            (service.name, list(service.environment)) for service in build_services(site)
        ),
        'site_network': site.site_prefix,
        'frontend_network': config.frontend_network,
        'backend_network': config.backend_network,
    }
    context.update(filters)
    return context


class ManifestRenderer:
    """Renders compose manifests and site configuration files."""

    def __init__(self, templates_dir: Optional[Path] = None):
        """Initialize renderer.

        Args:
            templates_dir: Template directory. Defaults to sitebox/templates/
        """
        if templates_dir is None:
            templates_dir = Path(__file__).parent.parent / "templates"
        self.templates_dir = Path(templates_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )

    def render_template(self, template_ref: str, context: Mapping[str, Any]) -> str:
        """Render one template; any missing template or name is a RenderError."""
        try:
            template = self.env.get_template(template_ref)
        except TemplateNotFound as e:
            raise RenderError(f"Template '{template_ref}' not found in {self.templates_dir}") from e
        try:
            return template.render(**context)
        except UndefinedError as e:
            raise RenderError(f"Template '{template_ref}' is missing a context value: {e}") from e
        except TemplateError as e:
            raise RenderError(f"Failed to render template '{template_ref}': {e}") from e

    def render(self, context: Mapping[str, Any], volume_table: VolumeTable) -> str:
        """Render the compose manifest.

        Args:
            context: Values from manifest_context() (every REQUIRED_CONTEXT key)
            volume_table: Ordered ``service -> volumes`` table

        Returns:
            Manifest text

        Raises:
            RenderError: On a missing key, template problem or invalid YAML
        """
        missing = [key for key in REQUIRED_CONTEXT if key not in context]
        if missing:
            raise RenderError(f"Manifest context is missing required keys: {', '.join(missing)}")

        platform = context['platform']
        prefix = context['site_prefix']
        values = dict(context)
        values['mounts'] = self.service_mounts(volume_table, platform)
        values['named_volumes'] = self.named_volumes(volume_table, platform, prefix)

        manifest = self.render_template(MANIFEST_TEMPLATE, values)
        try:
            yaml.safe_load(manifest)
        except yaml.YAMLError as e:
            raise RenderError(f"Rendered manifest is not valid YAML: {e}") from e
        logger.debug(f"Rendered manifest for {context['site_url']} ({len(manifest)} bytes)")
        return manifest

    @staticmethod
    def service_mounts(volume_table: VolumeTable, platform: str) -> Dict[str, List[str]]:
        """Mount strings per service for the given platform.

        ``skip_volume`` descriptors become ``host:container`` binds and are
        always listed; the others refer to the named volume.
        """
        mounts: Dict[str, List[str]] = OrderedDict()
        for service, volumes in volume_table.items():
            entries = []
            for volume in volumes:
                if not volume.applies_to(platform):
                    continue
                source = volume.host_path if volume.skip_volume else volume.name
                entry = f"{source}:{volume.container_path}"
                if entry not in entries:
                    entries.append(entry)
            mounts[service] = entries
        return mounts

    @staticmethod
    def named_volumes(volume_table: VolumeTable, platform: str, site_prefix: str) -> Dict[str, str]:
        """Ordered ``name -> docker volume name`` for the top-level volumes key."""
        names: Dict[str, str] = OrderedDict()
        for volumes in volume_table.values():
            for volume in volumes:
                if volume.needs_registration(platform) and volume.name not in names:
                    names[volume.name] = volume_name(site_prefix, volume.name)
        return names
