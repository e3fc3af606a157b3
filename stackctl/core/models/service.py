"""
Service model — one managed unit of the stack and the manifest holding them.

The manifest is validated on construction: every dependency must name a
declared service and the dependency graph must be acyclic.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator


class Service(BaseModel):
    """A compose service as seen by the orchestrator."""

    name: str
    healthcheck: list[str] = Field(default_factory=list)  # argv; empty = none
    depends_on: list[str] = Field(default_factory=list)
    ports: list[str] = Field(default_factory=list)

    @field_validator("depends_on")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for name in value:
            if name not in seen:
                seen.append(name)
        return seen

    @property
    def has_healthcheck(self) -> bool:
        return bool(self.healthcheck)

    @property
    def published_port(self) -> str | None:
        """First host port from ``ports`` (``[ip:]host:container[/proto]``)."""
        for mapping in self.ports:
            parts = mapping.split("/", 1)[0].split(":")
            if len(parts) >= 2 and parts[-2]:
                return parts[-2]
        return None


class ServiceManifest(BaseModel):
    """All services of an environment, keyed by name (declaration order kept)."""

    services: dict[str, Service] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_graph(self) -> ServiceManifest:
        for svc in self.services.values():
            for dep in svc.depends_on:
                if dep not in self.services:
                    raise ValueError(f"Service '{svc.name}' depends on undeclared service '{dep}'")
        cycle = self._find_cycle()
        if cycle:
            raise ValueError(f"Dependency cycle: {' -> '.join(cycle)}")
        return self

    def _find_cycle(self) -> list[str]:
        visiting: list[str] = []
        done: set[str] = set()

        def visit(name: str) -> list[str]:
            if name in done:
                return []
            if name in visiting:
                return visiting[visiting.index(name):] + [name]
            visiting.append(name)
            for dep in self.services[name].depends_on:
                found = visit(dep)
                if found:
                    return found
            visiting.pop()
            done.add(name)
            return []

        for name in self.services:
            found = visit(name)
            if found:
                return found
        return []

    @property
    def names(self) -> list[str]:
        return list(self.services)

    def get(self, name: str) -> Service | None:
        return self.services.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.services

    def unknown(self, names: list[str]) -> list[str]:
        """Return the names that are not declared in this manifest."""
        return [n for n in names if n not in self.services]

    def startup_layers(self) -> list[list[str]]:
        """Group services into layers; each layer depends only on earlier ones."""
        placed: set[str] = set()
        layers: list[list[str]] = []
        remaining = list(self.services)
        while remaining:
            layer = [
                n for n in remaining
                if all(dep in placed for dep in self.services[n].depends_on)
            ]
            layers.append(layer)
            placed.update(layer)
            remaining = [n for n in remaining if n not in placed]
        return layers

    def dependencies_of(self, names: list[str]) -> set[str]:
        """Names that at least one of ``names`` waits on."""
        return {dep for n in names for dep in self.services[n].depends_on}
