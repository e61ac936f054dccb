"""
Registry for bootstrap components.

Component classes register themselves with a decorator; the pipeline asks
the registry for the install order.
"""

from typing import Dict, List, Optional, Set, Type

from provisioner.base_component import BaseComponent


class ComponentRegistry:
    """
    Registry for component classes.
    """

    _registry: Dict[str, Type[BaseComponent]] = {}

    @classmethod
    def register(
        cls,
        name: str,
        dependencies: Optional[List[str]] = None,
        description: str = "",
    ):
        """
        Decorator for registering component classes.

        Args:
            name: The name of the component.
            dependencies: Names of components that must succeed first.
            description: Human-readable description.

        Returns:
            A decorator function that registers the component class.
        """

        def decorator(
            component_class: Type[BaseComponent],
        ) -> Type[BaseComponent]:
            if name in cls._registry:
                raise ValueError(
                    f"Component with name '{name}' already registered"
                )

            component_class.metadata = {
                "name": name,
                "dependencies": list(dependencies or []),
                "description": description,
            }
            cls._registry[name] = component_class
            return component_class

        return decorator

    @classmethod
    def get_component(cls, name: str) -> Type[BaseComponent]:
        """
        Get a component class by name.

        Raises:
            KeyError: If no component with the given name is registered.
        """
        if name not in cls._registry:
            raise KeyError(f"No component registered with name '{name}'")

        return cls._registry[name]

    @classmethod
    def get_component_dependencies(cls, name: str) -> Set[str]:
        """
        Get the dependencies of a component.

        Raises:
            KeyError: If no component with the given name is registered.
        """
        component_class = cls.get_component(name)
        metadata = getattr(component_class, "metadata", {})
        return set(metadata.get("dependencies", []))

    @classmethod
    def resolve_dependencies(cls, components: List[str]) -> List[str]:
        """
        Resolve dependencies for a list of components.

        Args:
            components: A list of component names.

        Returns:
            Component names in the order they should be installed,
            dependencies first. Dependencies not listed are pulled in.

        Raises:
            KeyError: If any of the components or their dependencies are not registered.
            ValueError: If there is a circular dependency.
        """
        result: List[str] = []
        visited: Set[str] = set()
        temp_visited: Set[str] = set()

        def visit(component: str):
            if component in temp_visited:
                raise ValueError(
                    f"Circular dependency detected involving '{component}'"
                )

            if component in visited:
                return

            temp_visited.add(component)

            for dependency in sorted(
                cls.get_component_dependencies(component)
            ):
                visit(dependency)

            temp_visited.remove(component)
            visited.add(component)
            result.append(component)

        for component in components:
            if component not in visited:
                visit(component)

        return result
