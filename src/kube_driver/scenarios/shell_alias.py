"""Shell alias scenario: `k` as a shortcut for kubectl."""

from kube_driver.actions import ShellAliasAction
from kube_driver.config import NodeConfig
from kube_driver.scenarios import register_scenario


@register_scenario
class ShellAlias:
    """Add alias k=kubectl to the invoking user's shell profile."""

    name = 'shell-alias'
    description = 'Add k=kubectl alias to ~/.bashrc and ~/.bash_profile'
    requires_root = False
    requires_host_profile = False
    expected_runtime = 1

    def get_phases(self, _config: NodeConfig) -> list[tuple[str, object, str]]:
        return [
            ('shell_alias', ShellAliasAction(name='alias'), 'Add kubectl alias'),
        ]
