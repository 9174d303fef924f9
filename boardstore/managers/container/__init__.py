from boardstore.managers.container.container import ContainerStore

__all__ = ["ContainerStore"]
