from __future__ import annotations

from quiz_quest.catalog import Catalog
from quiz_quest.gamification import format_minutes_hm
from quiz_quest.service import EventOutcome, PurchaseOutcome, StatusView

PURCHASE_REASONS = {
    "insufficient_funds": "Not enough points.",
    "already_active": "This power-up is already active.",
    "unknown_power_up": "Unknown power-up.",
    "disabled": "Power-ups are disabled right now.",
}


def _bar(ratio: float, width: int = 20) -> str:
    filled = max(0, min(width, int(round(ratio * width))))
    return "█" * filled + "░" * (width - filled)


def status_message(view: StatusView) -> str:
    p = view.progress
    lines = [
        "📊 Status",
        "",
        f"⚡ Level {view.level}",
        f"⭐ Points: {p.points:,} ({view.current_level_points:,} / {view.next_level_points:,} to Level {view.level + 1})",
        f"{_bar(view.progress_ratio)} {view.progress_ratio * 100:.1f}%",
        f"🔥 Streak: {p.streak} days | Best: {p.longest_streak}",
        f"🎯 Today: {format_minutes_hm(view.daily_progress)} / {format_minutes_hm(p.daily_goal)}"
        + (" ✅" if view.daily_goal_reached else ""),
        f"⏱️ Total study time: {format_minutes_hm(p.total_study_time)}",
        "",
        f"🏅 Badges: {view.badges_earned}/{len(p.badges)}",
        f"🏆 Achievements: {view.achievements_earned}/{len(p.achievements)}",
        f"⚔️ Quests: {view.quests_completed}/{len(p.quests)}",
        f"🗓️ Challenges today: {view.challenges_completed_today}/{len(p.challenges)}",
    ]
    if view.active_power_ups:
        lines.append("")
        lines.append("✨ Active power-ups:")
        for activation in view.active_power_ups:
            lines.append(f"  • {activation.power_up_id} until {activation.expires_at.strftime('%H:%M')}")
    return "\n".join(lines)


def unlock_lines(outcome: EventOutcome, catalog: Catalog) -> list[str]:
    lines: list[str] = []
    if outcome.leveled_up:
        lines.append(f"🎉 Level up! You reached level {outcome.progress.level}.")
    for badge_id in outcome.badge_ids:
        badge = catalog.badge(badge_id)
        if badge:
            lines.append(f"{badge.icon} Badge earned: {badge.name}")
    for achievement_id in outcome.achievement_ids:
        achievement = catalog.achievement(achievement_id)
        if achievement:
            lines.append(f"{achievement.icon} Achievement unlocked: {achievement.name} (+{achievement.points})")
    for quest_id in outcome.quest_ids:
        quest = catalog.quest(quest_id)
        if quest:
            lines.append(f"{quest.icon} Quest completed: {quest.name} (+{quest.reward})")
    for challenge_id in outcome.challenge_ids:
        challenge = catalog.challenge(challenge_id)
        if challenge:
            lines.append(f"{challenge.icon} Challenge completed: {challenge.name} (+{challenge.reward})")
    return lines


def points_message(outcome: EventOutcome, catalog: Catalog) -> str:
    sign = "+" if outcome.points_delta >= 0 else ""
    lines = [f"{sign}{outcome.points_delta} points (total {outcome.progress.points:,})"]
    lines.extend(unlock_lines(outcome, catalog))
    return "\n".join(lines)


def purchase_message(outcome: PurchaseOutcome) -> str:
    if outcome.success:
        if outcome.activation is None:
            return f"✅ {outcome.power_up_id} used (-{outcome.cost} points)."
        return f"✅ {outcome.power_up_id} active until {outcome.activation.expires_at.strftime('%H:%M')} (-{outcome.cost} points)."
    return f"❌ {PURCHASE_REASONS.get(outcome.reason or '', 'Purchase failed.')}"
