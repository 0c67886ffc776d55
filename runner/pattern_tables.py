"""Static pattern tables shipped with the optimizer.

Order inside each table matters: the first matching entry wins, so specific
product patterns come before vendor-wide wildcards. The protected tables are
always consulted before the category tables by the classifier.
"""

from typing import Sequence, Tuple

from classifier import PatternTables
from pattern_matcher import Bucket, PatternEntry


def _entries(category: Bucket, pairs: Sequence[Tuple[str, str]]) -> Tuple[PatternEntry, ...]:
    return tuple(PatternEntry(pattern, label, category) for pattern, label in pairs)


# --- Startup entries (registry Run / RunOnce value names) ---

# 28 essential processes: Windows components, drivers, security tools, browsers
STARTUP_PROTECTED = _entries(
    Bucket.PROTECTED,
    [
        ("csrss", "Client Server Runtime"),
        ("winlogon", "Windows Logon"),
        ("explorer", "Windows Explorer"),
        ("dwm", "Desktop Window Manager"),
        ("lsass", "Local Security Authority"),
        ("services", "Service Control Manager"),
        ("svchost", "Service Host"),
        ("ctfmon", "Text Input Processor"),
        ("SecurityHealth*", "Windows Security"),
        ("WindowsDefender*", "Microsoft Defender"),
        ("MsMpEng", "Microsoft Defender Engine"),
        ("MSASCui*", "Microsoft Defender UI"),
        ("RtHDVCpl*", "Realtek Audio"),
        ("RtkAud*", "Realtek Audio"),
        ("Realtek*", "Realtek Audio"),
        ("igfx*", "Intel Graphics"),
        ("IntelGraphics*", "Intel Graphics"),
        ("NvBackend", "NVIDIA Driver Helper"),
        ("NVIDIA*", "NVIDIA Driver"),
        ("AMD*", "AMD Driver"),
        ("Radeon*", "AMD Radeon Software"),
        ("SynTP*", "Synaptics Touchpad"),
        ("ETD*", "Elan Touchpad"),
        ("*Bitdefender*", "Bitdefender"),
        ("*Malwarebytes*", "Malwarebytes"),
        ("*Kaspersky*", "Kaspersky"),
        ("ESET*", "ESET Security"),
        ("*Firefox*", "Mozilla Firefox"),
    ],
)

# Definite junk: vendor updaters, helpers and tray launchers nobody needs at logon
STARTUP_JUNK = _entries(
    Bucket.CATEGORY_A,
    [
        ("Adobe*Updater*", "Adobe Updater"),
        ("AdobeAAMUpdater*", "Adobe Updater"),
        ("Adobe*", "Adobe"),
        ("CCleaner*", "CCleaner"),
        ("iTunesHelper", "iTunes Helper"),
        ("QuickTime*", "QuickTime"),
        ("SunJavaUpdateSched", "Java Update Scheduler"),
        ("Java*Update*", "Java Updater"),
        ("Wondershare*", "Wondershare"),
        ("uTorrent*", "uTorrent"),
        ("BitTorrent*", "BitTorrent"),
        ("Skype*", "Skype"),
        ("CyberLink*", "CyberLink"),
        ("McAfee*", "McAfee Trial"),
        ("Norton*", "Norton Trial"),
        ("HPMessageService", "HP Messages"),
        ("*HPSupportAssistant*", "HP Support Assistant"),
        ("Lenovo*Vantage*", "Lenovo Vantage"),
        ("Acer*Portal*", "Acer Portal"),
        ("Dell*Digital*Delivery*", "Dell Digital Delivery"),
        ("Opera Browser Assistant", "Opera Browser Assistant"),
        ("GoogleUpdate*", "Google Updater"),
        ("Discord*", "Discord"),
        ("EpicGamesLauncher*", "Epic Games Launcher"),
        ("Spotify*", "Spotify"),
        ("Cortana*", "Cortana"),
    ],
)

# Popular software: removed only when the user says so
STARTUP_POPULAR = _entries(
    Bucket.CATEGORY_B,
    [
        ("OneDrive*", "Microsoft OneDrive"),
        ("Dropbox*", "Dropbox"),
        ("GoogleDrive*", "Google Drive"),
        ("Steam*", "Steam"),
        ("Battle.net*", "Battle.net"),
        ("Origin*", "EA Origin"),
        ("EADM", "EA App"),
        ("Ubisoft*", "Ubisoft Connect"),
        ("GOG*", "GOG Galaxy"),
        ("Teams*", "Microsoft Teams"),
        ("com.squirrel.Teams*", "Microsoft Teams"),
        ("Slack*", "Slack"),
        ("Zoom*", "Zoom"),
        ("Telegram*", "Telegram"),
        ("WhatsApp*", "WhatsApp"),
        ("Lghub*", "Logitech G Hub"),
        ("Razer*", "Razer Synapse"),
        ("Corsair*", "Corsair iCUE"),
        ("MicrosoftEdgeAutoLaunch*", "Microsoft Edge Auto Launch"),
        ("Opera*", "Opera"),
    ],
)

STARTUP_TABLES = PatternTables(
    protected=STARTUP_PROTECTED,
    category_a=STARTUP_JUNK,
    category_b=STARTUP_POPULAR,
)


# --- Installed packages (Appx package names) ---

PACKAGE_PROTECTED = _entries(
    Bucket.PROTECTED,
    [
        ("Microsoft.WindowsStore", "Microsoft Store"),
        ("Microsoft.StorePurchaseApp", "Store Purchase"),
        ("Microsoft.DesktopAppInstaller", "App Installer (winget)"),
        ("Microsoft.WindowsCalculator", "Calculator"),
        ("Microsoft.WindowsNotepad", "Notepad"),
        ("Microsoft.Windows.Photos", "Photos"),
        ("Microsoft.Paint", "Paint"),
        ("Microsoft.ScreenSketch", "Snipping Tool"),
        ("Microsoft.WindowsTerminal", "Windows Terminal"),
        ("Microsoft.SecHealthUI", "Windows Security"),
        ("Microsoft.VCLibs*", "Visual C++ Runtime"),
        ("Microsoft.UI.Xaml*", "UI Xaml Framework"),
        ("Microsoft.NET*", ".NET Runtime"),
        ("Microsoft.HEIFImageExtension", "HEIF Image Extension"),
        ("Microsoft.HEVCVideoExtension", "HEVC Video Extension"),
        ("Microsoft.VP9VideoExtensions", "VP9 Video Extension"),
        ("Microsoft.WebMediaExtensions", "Web Media Extensions"),
        ("Microsoft.WebpImageExtension", "WebP Image Extension"),
        ("Microsoft.AV1VideoExtension", "AV1 Video Extension"),
        ("Microsoft.Windows.ShellExperienceHost", "Shell Experience Host"),
        ("Microsoft.Windows.StartMenuExperienceHost", "Start Menu"),
        ("Microsoft.AAD.BrokerPlugin", "Work or School Account"),
        ("Microsoft.AccountsControl", "Accounts Control"),
        ("Microsoft.LockApp", "Lock Screen"),
        ("Microsoft.Windows.CloudExperienceHost", "Cloud Experience Host"),
        ("windows.immersivecontrolpanel", "Settings"),
        ("*NVIDIA*", "NVIDIA Control Panel"),
        ("*Realtek*", "Realtek Audio Console"),
        ("*Intel*Graphics*", "Intel Graphics Command Center"),
        ("*AdvancedMicroDevices*", "AMD Radeon Software"),
    ],
)

PACKAGE_BLOATWARE = _entries(
    Bucket.CATEGORY_A,
    [
        ("Microsoft.BingNews", "Microsoft News"),
        ("Microsoft.BingWeather", "Weather"),
        ("Microsoft.BingFinance", "Money"),
        ("Microsoft.BingSports", "Sports"),
        ("Microsoft.BingSearch", "Bing Search"),
        ("Microsoft.GetHelp", "Get Help"),
        ("Microsoft.Getstarted", "Tips"),
        ("Microsoft.Messaging", "Messaging"),
        ("Microsoft.Microsoft3DViewer", "3D Viewer"),
        ("Microsoft.MicrosoftOfficeHub", "Office Hub"),
        ("Microsoft.MicrosoftSolitaireCollection", "Solitaire Collection"),
        ("Microsoft.MixedReality.Portal", "Mixed Reality Portal"),
        ("Microsoft.OneConnect", "Mobile Plans"),
        ("Microsoft.People", "People"),
        ("Microsoft.Print3D", "Print 3D"),
        ("Microsoft.SkypeApp", "Skype"),
        ("Microsoft.Wallet", "Wallet"),
        ("Microsoft.WindowsFeedbackHub", "Feedback Hub"),
        ("Microsoft.WindowsMaps", "Maps"),
        ("Microsoft.ZuneMusic", "Groove Music"),
        ("Microsoft.ZuneVideo", "Movies & TV"),
        ("Microsoft.Todos", "Microsoft To Do"),
        ("Microsoft.PowerAutomateDesktop", "Power Automate"),
        ("Clipchamp.Clipchamp", "Clipchamp"),
        ("MicrosoftCorporationII.MicrosoftFamily", "Family Safety"),
        ("MicrosoftCorporationII.QuickAssist", "Quick Assist"),
        ("*CandyCrush*", "Candy Crush"),
        ("*BubbleWitch*", "Bubble Witch"),
        ("*MarchofEmpires*", "March of Empires"),
        ("*HiddenCity*", "Hidden City"),
        ("*Disney*", "Disney+"),
        ("*Netflix*", "Netflix"),
        ("*Hulu*", "Hulu"),
        ("*Twitter*", "Twitter"),
        ("*Facebook*", "Facebook"),
        ("*Instagram*", "Instagram"),
        ("*TikTok*", "TikTok"),
        ("*Flipboard*", "Flipboard"),
        ("*PandoraMediaInc*", "Pandora"),
        ("*Duolingo*", "Duolingo"),
        ("*EclipseManager*", "Eclipse Manager"),
        ("*ActiproSoftware*", "Actipro Software"),
        ("*AdobePhotoshopExpress*", "Photoshop Express"),
        ("*McAfee*", "McAfee"),
        ("*Norton*", "Norton"),
        ("*ExpressVPN*", "ExpressVPN Trial"),
        ("*Booking*", "Booking.com"),
        ("*Amazon*", "Amazon"),
        ("*king.com*", "King Games"),
        ("*HPPrinterControl*", "HP Smart"),
        ("*HPJumpStart*", "HP JumpStart"),
        ("*DellCustomerConnect*", "Dell Customer Connect"),
        ("*LenovoCompanion*", "Lenovo Companion"),
        ("*AcerIncorporated*", "Acer Apps"),
        ("*CyberLinkCorp*", "CyberLink Apps"),
    ],
)

PACKAGE_OPTIONAL = _entries(
    Bucket.CATEGORY_B,
    [
        ("Microsoft.XboxApp", "Xbox Console Companion"),
        ("Microsoft.GamingApp", "Xbox"),
        ("Microsoft.XboxGamingOverlay", "Xbox Game Bar"),
        ("Microsoft.XboxGameOverlay", "Xbox Game Overlay"),
        ("Microsoft.XboxSpeechToTextOverlay", "Xbox Speech To Text"),
        ("Microsoft.XboxIdentityProvider", "Xbox Identity Provider"),
        ("Microsoft.Xbox.TCUI", "Xbox TCUI"),
        ("Microsoft.YourPhone", "Phone Link"),
        ("Microsoft.WindowsCamera", "Camera"),
        ("Microsoft.WindowsAlarms", "Alarms & Clock"),
        ("Microsoft.WindowsSoundRecorder", "Sound Recorder"),
        ("Microsoft.MicrosoftStickyNotes", "Sticky Notes"),
        ("microsoft.windowscommunicationsapps", "Mail and Calendar"),
        ("Microsoft.OutlookForWindows", "Outlook (new)"),
        ("MSTeams", "Microsoft Teams"),
        ("Microsoft.OneDriveSync", "OneDrive"),
        ("*Spotify*", "Spotify"),
        ("*Dolby*", "Dolby Audio"),
    ],
)

PACKAGE_TABLES = PatternTables(
    protected=PACKAGE_PROTECTED,
    category_a=PACKAGE_BLOATWARE,
    category_b=PACKAGE_OPTIONAL,
)


# --- Scheduled tasks that must survive startup cleanup ---

PROTECTED_TASK_PATTERNS = _entries(
    Bucket.PROTECTED,
    [
        ("\\Microsoft\\Windows\\*", "Core Windows task"),
        ("\\Microsoft\\Office\\*", "Microsoft Office task"),
        ("*Defender*", "Security task"),
        ("*Security*", "Security task"),
        ("*Antivirus*", "Security task"),
        ("*Backup*", "Backup task"),
        ("*Restore*", "Backup task"),
        ("*Update*", "Update task"),
        ("*Driver*", "Driver task"),
        ("*NVIDIA*", "Driver task"),
        ("*Intel*", "Driver task"),
    ],
)


# --- Network adapters that make TCP/IP and Winsock resets unsafe ---

# 17 VPN and virtual-machine adapter signatures
VPN_VM_ADAPTER_PATTERNS = _entries(
    Bucket.PROTECTED,
    [
        ("*VPN*", "VPN adapter"),
        ("*TAP-Windows*", "OpenVPN TAP adapter"),
        ("*OpenVPN*", "OpenVPN"),
        ("*WireGuard*", "WireGuard"),
        ("*wg*tunnel*", "WireGuard tunnel"),
        ("*Tailscale*", "Tailscale"),
        ("*ZeroTier*", "ZeroTier"),
        ("*NordLynx*", "NordVPN"),
        ("*Wintun*", "Wintun tunnel"),
        ("*Cisco AnyConnect*", "Cisco AnyConnect"),
        ("*FortiClient*", "FortiClient"),
        ("*GlobalProtect*", "GlobalProtect"),
        ("*Hamachi*", "LogMeIn Hamachi"),
        ("*VMware*", "VMware virtual adapter"),
        ("*VirtualBox*", "VirtualBox host-only adapter"),
        ("*Hyper-V*", "Hyper-V virtual switch"),
        ("vEthernet*", "Hyper-V virtual switch"),
    ],
)


__all__ = [
    "PACKAGE_BLOATWARE",
    "PACKAGE_OPTIONAL",
    "PACKAGE_PROTECTED",
    "PACKAGE_TABLES",
    "PROTECTED_TASK_PATTERNS",
    "STARTUP_JUNK",
    "STARTUP_POPULAR",
    "STARTUP_PROTECTED",
    "STARTUP_TABLES",
    "VPN_VM_ADAPTER_PATTERNS",
]
