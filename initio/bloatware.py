"""
Pre-installed AppX package removal through PowerShell.

winget cannot remove provisioned Store apps, so removal, detection and
removal verification go through Get-AppxPackage / Remove-AppxPackage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .common import vlog
from .config import Timeouts
from .errors import InitioError, ProcessLaunchFailure, ProcessTimeout
from .models import BloatwareItem, ProcessResult
from .process import CancellationToken, ProcessRunner
from .validation import require_appx_name

logger = logging.getLogger(__name__)

POWERSHELL_EXECUTABLE = "powershell.exe"
POWERSHELL_FLAGS = ("-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command")

DETECT_SCRIPT = "Get-AppxPackage | Select-Object -ExpandProperty Name"


@dataclass(frozen=True)
class BloatwareDefinition:
    """Known pre-installed package."""
    name: str
    category: str
    package_name: str
    description: str

    def to_item(self) -> BloatwareItem:
        return BloatwareItem(
            name=self.name,
            category=self.category,
            external_id=self.package_name,
            description=self.description,
        )


KNOWN_BLOATWARE: tuple[BloatwareDefinition, ...] = (
    # Games
    BloatwareDefinition("Candy Crush Saga", "Games", "king.com.CandyCrushSaga", "Pre-installed mobile game"),
    BloatwareDefinition("Candy Crush Friends", "Games", "king.com.CandyCrushFriends", "Pre-installed mobile game"),
    BloatwareDefinition("Bubble Witch 3 Saga", "Games", "king.com.BubbleWitch3Saga", "Pre-installed mobile game"),
    BloatwareDefinition("Farm Heroes Saga", "Games", "king.com.FarmHeroesSaga", "Pre-installed mobile game"),
    BloatwareDefinition("March of Empires", "Games", "A278AB0D.MarchofEmpires", "Pre-installed strategy game"),
    BloatwareDefinition("Microsoft Solitaire", "Games", "Microsoft.MicrosoftSolitaireCollection", "Card game with ads"),
    BloatwareDefinition("Minecraft (Trial)", "Games", "Microsoft.MinecraftEducationEdition", "Trial/education edition"),
    # Social & Entertainment
    BloatwareDefinition("Disney+", "Social & Entertainment", "Disney.37853FC22B2CE", "Streaming app promotion"),
    BloatwareDefinition("Spotify (Pre-installed)", "Social & Entertainment", "SpotifyAB.SpotifyMusic", "Pre-installed promotion"),
    BloatwareDefinition("TikTok", "Social & Entertainment", "BytedancePte.Ltd.TikTok", "Pre-installed social media"),
    BloatwareDefinition("Instagram", "Social & Entertainment", "Facebook.Instagram", "Pre-installed social media"),
    BloatwareDefinition("Facebook", "Social & Entertainment", "Facebook.Facebook", "Pre-installed social media"),
    BloatwareDefinition("Messenger", "Social & Entertainment", "Facebook.Messenger", "Pre-installed messenger"),
    BloatwareDefinition("Netflix", "Social & Entertainment", "4DF9E0F8.Netflix", "Streaming promotion"),
    BloatwareDefinition("Amazon Prime Video", "Social & Entertainment", "AmazonVideo.PrimeVideo", "Streaming promotion"),
    BloatwareDefinition("Twitter", "Social & Entertainment", "9E2F88E3.Twitter", "Pre-installed social media"),
    BloatwareDefinition("LinkedIn", "Social & Entertainment", "Microsoft.LinkedIn", "Pre-installed professional network"),
    BloatwareDefinition("WhatsApp", "Social & Entertainment", "5319275A.WhatsAppDesktop", "Pre-installed messenger"),
    # Microsoft Bloat
    BloatwareDefinition("News", "Microsoft Bloat", "Microsoft.BingNews", "Bing News aggregator"),
    BloatwareDefinition("Weather", "Microsoft Bloat", "Microsoft.BingWeather", "Bing Weather widget"),
    BloatwareDefinition("Finance", "Microsoft Bloat", "Microsoft.BingFinance", "Bing Finance widget"),
    BloatwareDefinition("Sports", "Microsoft Bloat", "Microsoft.BingSports", "Bing Sports widget"),
    BloatwareDefinition("Maps", "Microsoft Bloat", "Microsoft.WindowsMaps", "Windows Maps (rarely used)"),
    BloatwareDefinition("People", "Microsoft Bloat", "Microsoft.People", "Contacts app"),
    BloatwareDefinition("Groove Music", "Microsoft Bloat", "Microsoft.ZuneMusic", "Legacy music player"),
    BloatwareDefinition("Movies & TV", "Microsoft Bloat", "Microsoft.ZuneVideo", "Legacy video player"),
    BloatwareDefinition("Mail and Calendar", "Microsoft Bloat", "microsoft.windowscommunicationsapps", "Legacy mail app"),
    BloatwareDefinition("Mixed Reality Portal", "Microsoft Bloat", "Microsoft.MixedReality.Portal", "VR headset portal"),
    BloatwareDefinition("3D Viewer", "Microsoft Bloat", "Microsoft.Microsoft3DViewer", "3D model viewer"),
    BloatwareDefinition("Paint 3D", "Microsoft Bloat", "Microsoft.MSPaint", "Legacy 3D paint app"),
    BloatwareDefinition("OneNote (Win10)", "Microsoft Bloat", "Microsoft.Office.OneNote", "Legacy OneNote"),
    BloatwareDefinition("Skype", "Microsoft Bloat", "Microsoft.SkypeApp", "Legacy Skype"),
    BloatwareDefinition("Clipchamp", "Microsoft Bloat", "Clipchamp.Clipchamp", "Video editor promotion"),
    BloatwareDefinition("Power Automate", "Microsoft Bloat", "Microsoft.PowerAutomateDesktop", "RPA tool"),
    BloatwareDefinition("Microsoft Family", "Microsoft Bloat", "MicrosoftCorporationII.MicrosoftFamily", "Parental control app"),
    # Promotions
    BloatwareDefinition("Xbox Game Bar", "Promotions", "Microsoft.XboxGamingOverlay", "Gaming overlay"),
    BloatwareDefinition("Xbox Identity Provider", "Promotions", "Microsoft.XboxIdentityProvider", "Xbox login service"),
    BloatwareDefinition("Xbox Console Companion", "Promotions", "Microsoft.XboxApp", "Legacy Xbox companion"),
    BloatwareDefinition("Feedback Hub", "Promotions", "Microsoft.WindowsFeedbackHub", "Microsoft feedback tool"),
    BloatwareDefinition("Get Help", "Promotions", "Microsoft.GetHelp", "Microsoft help app"),
    BloatwareDefinition("Tips", "Promotions", "Microsoft.Getstarted", "Windows tips and tricks"),
    BloatwareDefinition("Phone Link", "Promotions", "Microsoft.YourPhone", "Phone-to-PC linking app"),
)


def known_bloatware() -> list[BloatwareItem]:
    """Fresh removal items for every known bloatware package."""
    return [definition.to_item() for definition in KNOWN_BLOATWARE]


def removal_script(package_name: str) -> str:
    """
    PowerShell script removing every package matching *package_name*.

    Raises:
        ValidationError: If package_name is malformed
    """
    name = require_appx_name(package_name)
    return f"Get-AppxPackage '*{name}*' | Remove-AppxPackage -ErrorAction Stop"


def query_script(package_name: str) -> str:
    """
    PowerShell script printing the names of packages matching *package_name*.

    Raises:
        ValidationError: If package_name is malformed
    """
    name = require_appx_name(package_name)
    return f"Get-AppxPackage '*{name}*' | Select-Object -ExpandProperty Name"


class PowerShellClient:
    """
    Runs AppX scripts through PowerShell.

    Attributes:
        runner: Process runner used for every invocation
        timeouts: Per-command timeouts
        executable: PowerShell executable name or path
        verbose: Enable verbose logging
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        timeouts: Timeouts | None = None,
        executable: str = POWERSHELL_EXECUTABLE,
        verbose: bool = False,
    ):
        self.timeouts = timeouts or Timeouts()
        self.runner = runner or ProcessRunner(default_timeout=self.timeouts.default_command, verbose=verbose)
        self.executable = executable
        self.verbose = verbose

    def run_script(
        self,
        script: str,
        timeout: float,
        cancel: CancellationToken | None = None,
    ) -> ProcessResult:
        """
        Run a PowerShell script.

        Raises:
            ProcessLaunchFailure, ProcessTimeout, OperationCancelled
        """
        return self.runner.run(
            self.executable, [*POWERSHELL_FLAGS, script],
            timeout=timeout, cancel=cancel,
        )

    def list_package_names(self, cancel: CancellationToken | None = None) -> list[str] | None:
        """
        Names of all AppX packages for the current user.

        Returns:
            Package names, or None if the listing failed
        """
        try:
            result = self.run_script(DETECT_SCRIPT, self.timeouts.bloatware_detection, cancel)
        except InitioError as e:
            logger.info(f"AppX listing failed: {e.message}")
            return None
        if result.exit_code != 0:
            logger.info(f"AppX listing exited with code {result.exit_code}")
            return None
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def remove(self, package_name: str, cancel: CancellationToken | None = None) -> ProcessResult:
        """
        Remove one package.

        Raises:
            ValidationError, ProcessLaunchFailure, ProcessTimeout, OperationCancelled
        """
        return self.run_script(removal_script(package_name), self.timeouts.bloatware_removal, cancel)

    def is_removed(self, package_name: str, cancel: CancellationToken | None = None) -> bool:
        """
        Whether no package matching package_name remains.

        A failed query is not proof of removal; cancellation propagates.
        """
        try:
            result = self.run_script(query_script(package_name), self.timeouts.removal_verify, cancel)
        except (ProcessLaunchFailure, ProcessTimeout) as e:
            vlog(f"Removal check for {package_name} failed: {e.message}", self.verbose)
            return False
        return result.exit_code == 0 and not result.stdout.strip()
