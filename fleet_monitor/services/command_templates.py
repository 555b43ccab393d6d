from typing import List

from fleet_monitor.models.commands import CommandTemplate, TemplateGroup

_TEMPLATES = (
    (
        "System Info",
        (
            ("Hostname", "hostname"),
            ("OS Info", "cat /etc/os-release | head -5"),
            ("Kernel Version", "uname -r"),
            ("CPU Info", r'lscpu | grep -E "Model name|CPU\(s\)|Thread"'),
            ("Memory Info", "free -h"),
            ("Disk Usage", "df -h"),
        ),
    ),
    (
        "Processes",
        (
            ("Top Processes by CPU", "ps aux --sort=-%cpu | head -10"),
            ("Top Processes by Memory", "ps aux --sort=-%mem | head -10"),
            ("Process Count", "ps aux | wc -l"),
            ("Running Services", "systemctl list-units --type=service --state=running"),
        ),
    ),
    (
        "Network",
        (
            ("Network Interfaces", "ip addr show"),
            ("Network Connections", "ss -tuln"),
            ("Routing Table", "ip route"),
            ("DNS Configuration", "cat /etc/resolv.conf"),
        ),
    ),
    (
        "Logs",
        (
            ("System Logs (last 20)", "journalctl -n 20 --no-pager"),
            ("Auth Logs", 'tail -20 /var/log/auth.log 2>/dev/null || echo "Log file not accessible"'),
            ("Kernel Messages", "dmesg | tail -20"),
        ),
    ),
    (
        "Disk & Storage",
        (
            ("Disk I/O Stats", "iostat -x 1 2 | tail -n +4"),
            ("Large Files (Top 10)", "du -ah /var | sort -rh | head -10"),
            ("Inode Usage", "df -i"),
        ),
    ),
)


def get_templates() -> List[TemplateGroup]:
    """Predefined commands grouped by category. Read-only; built fresh per call."""
    return [
        TemplateGroup(
            category=category,
            commands=[CommandTemplate(name=name, command=command) for name, command in commands],
        )
        for category, commands in _TEMPLATES
    ]
