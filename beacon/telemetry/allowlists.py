"""Names that may be reported verbatim. Everything else is anonymized."""

from __future__ import annotations

from dataclasses import dataclass

# Modules shipped with the host or published by well-known vendors.
KNOWN_MODULES = frozenset({
    "CimCmdlets",
    "Microsoft.PowerShell.Archive",
    "Microsoft.PowerShell.ConsoleGuiTools",
    "Microsoft.PowerShell.Core",
    "Microsoft.PowerShell.Crescendo",
    "Microsoft.PowerShell.Diagnostics",
    "Microsoft.PowerShell.Host",
    "Microsoft.PowerShell.Management",
    "Microsoft.PowerShell.Operation.Validation",
    "Microsoft.PowerShell.PSResourceGet",
    "Microsoft.PowerShell.SecretManagement",
    "Microsoft.PowerShell.SecretStore",
    "Microsoft.PowerShell.Security",
    "Microsoft.PowerShell.TextUtility",
    "Microsoft.PowerShell.ThreadJob",
    "Microsoft.PowerShell.UnixCompleters",
    "Microsoft.PowerShell.Utility",
    "Microsoft.WSMan.Management",
    "PackageManagement",
    "PowerShellGet",
    "PSDesiredStateConfiguration",
    "PSDiagnostics",
    "PSReadLine",
    "PSScriptAnalyzer",
    "Pester",
    "ThreadJob",
    "platyPS",
    "Az",
    "Az.Accounts",
    "Az.Compute",
    "Az.KeyVault",
    "Az.Network",
    "Az.Resources",
    "Az.Storage",
    "AzureAD",
    "ExchangeOnlineManagement",
    "Microsoft.Graph",
    "Microsoft.Graph.Authentication",
    "Microsoft.Graph.Users",
    "MicrosoftTeams",
    "AWS.Tools.Common",
    "AWSPowerShell.NetCore",
    "VMware.PowerCLI",
    "SqlServer",
    "dbatools",
    "ActiveDirectory",
    "BitLocker",
    "DnsClient",
    "Hyper-V",
    "NetAdapter",
    "NetSecurity",
    "NetTCPIP",
    "ScheduledTasks",
    "SmbShare",
    "Storage",
    "ImportExcel",
    "posh-git",
    "Terminal-Icons",
})

KNOWN_MODULE_TAGS = frozenset({
    "CrescendoBuilt",
})

# Experimental features built into the host engine.
KNOWN_ENGINE_FEATURES = frozenset({
    "PSAnsiRenderingFileInfo",
    "PSCommandNotFoundSuggestion",
    "PSCommandWithArgs",
    "PSCustomTableHeaderLabelDecoration",
    "PSFeedbackProvider",
    "PSLoadAssemblyFromNativeCode",
    "PSModuleAutoLoadSkipOfflineFiles",
    "PSNativeCommandErrorActionPreference",
    "PSNativeWindowsTildeExpansion",
    "PSRedirectToVariable",
    "PSSerializeJSONLongEnumAsNumber",
    "PSSubsystemPluginModel",
})

KNOWN_APPLICATION_TYPES = frozenset({
    "ConsoleHost",
    "Hosted",
    "ServerRemoteHost",
    "SDK",
})

KNOWN_START_MODES = frozenset({
    "Normal",
    "Interactive",
    "NonInteractive",
    "Command",
    "EncodedCommand",
    "File",
    "Server",
    "ServerSSH",
    "ServerSocket",
    "NamedPipe",
    "Login",
})


@dataclass(frozen=True)
class AllowlistSet:
    """Read-only allowlists, one per governed category."""

    modules: frozenset = KNOWN_MODULES
    module_tags: frozenset = KNOWN_MODULE_TAGS
    engine_features: frozenset = KNOWN_ENGINE_FEATURES
    application_types: frozenset = KNOWN_APPLICATION_TYPES
    start_modes: frozenset = KNOWN_START_MODES

    def as_dict(self) -> dict[str, list[str]]:
        return {
            "modules": sorted(self.modules),
            "module_tags": sorted(self.module_tags),
            "engine_features": sorted(self.engine_features),
            "application_types": sorted(self.application_types),
            "start_modes": sorted(self.start_modes),
        }


def default_allowlists() -> AllowlistSet:
    """Return the built-in allowlists."""
    return AllowlistSet()
