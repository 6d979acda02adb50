from typing import List

from forkrun.scanning.classifier import JarGroup


class ScanMetadata:
    """
    Ordered record of the jars metadata scanners should visit.
    """

    def __init__(self):
        self.container_jars: List[str] = []
        self.webapp_jars: List[str] = []

    def add_container_jar(self, uri: str) -> None:
        if uri not in self.container_jars:
            self.container_jars.append(uri)

    def add_webapp_jar(self, uri: str) -> None:
        if uri not in self.webapp_jars:
            self.webapp_jars.append(uri)

    def ordered_jars(self) -> List[str]:
        """Container jars first, then webapp jars, each in registration order."""
        return list(self.container_jars) + [uri for uri in self.webapp_jars if uri not in self.container_jars]

    def clear(self) -> None:
        self.container_jars.clear()
        self.webapp_jars.clear()


def register_jar_group(metadata: ScanMetadata, group: JarGroup) -> None:
    """Register a classification result, container jars before webapp jars."""
    for uri in group.container_jars:
        metadata.add_container_jar(uri)
    for uri in group.application_jars:
        metadata.add_webapp_jar(uri)
