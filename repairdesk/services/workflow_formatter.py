"""
Customer-facing WhatsApp texts for the repair workflow.

Every function here is pure: it maps a command, a ticket status and a few
context fields to the reply text and the conversational stage the reply
belongs to. Chat replies always end with the quick menu footer.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

from repairdesk.schemas.sop import SopStage
from repairdesk.services.intent_service import Command
from repairdesk.services.state_machine import TicketStatus

MENU_FOOTER = (
    "📲 Pilihan pantas: balas 1 = Status semasa, 2 = Salinan invois, 3 = Arahan pickup. "
    'Untuk kelulusan, balas "setuju" atau "tak setuju". Perlu bantuan manusia? Balas 4.'
)

STATUS_STAGES = {
    TicketStatus.INTAKE: SopStage.INTAKE_ACK,
    TicketStatus.DIAGNOSED: SopStage.DIAGNOSIS_SUMMARY,
    TicketStatus.AWAITING_APPROVAL: SopStage.AWAITING_APPROVAL,
    TicketStatus.REJECTED: SopStage.AWAITING_APPROVAL,
    TicketStatus.APPROVED: SopStage.REPAIR_UPDATES,
    TicketStatus.REPAIRING: SopStage.REPAIR_UPDATES,
    TicketStatus.DONE: SopStage.DONE_INVOICE,
    TicketStatus.PICKED_UP: SopStage.PICKUP_COMPLETE,
}

STATUS_LABELS = {
    TicketStatus.INTAKE: "Dalam giliran servis",
    TicketStatus.DIAGNOSED: "Diagnosis sedang dijalankan",
    TicketStatus.AWAITING_APPROVAL: "Menunggu kelulusan pelanggan",
    TicketStatus.APPROVED: "Pembaikan diluluskan",
    TicketStatus.REJECTED: "Tiket ditolak",
    TicketStatus.REPAIRING: "Pembaikan sedang dilakukan",
    TicketStatus.DONE: "Sedia untuk diambil",
    TicketStatus.PICKED_UP: "Telah diambil",
}


@dataclass(frozen=True)
class FormatterConfig:
    menu_footer: str = MENU_FOOTER
    currency_symbol: str = "RM"
    status_stages: dict = field(default_factory=lambda: dict(STATUS_STAGES))
    default_stage: SopStage = SopStage.REPAIR_UPDATES


@dataclass(frozen=True)
class FormattedReply:
    stage: SopStage
    text: str


@dataclass(frozen=True)
class ReplyContext:
    ticket_number: str
    status: TicketStatus
    customer_name: Optional[str] = None
    estimated_cost: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_total: Optional[str] = None
    invoice_status: Optional[str] = None


def _clean_name(name: Optional[str]) -> str:
    return (name or "").strip()


def _to_decimal(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


class WorkflowFormatter:
    def __init__(self, config: FormatterConfig | None = None):
        self.config = config or FormatterConfig()

    def with_footer(self, message: str) -> str:
        return f"{message} {self.config.menu_footer}".strip()

    def format_currency(self, value) -> Optional[str]:
        """`RM 1,234.50`, or None when the amount is missing or unparsable."""
        amount = _to_decimal(value)
        if amount is None:
            return None
        sign = "-" if amount < 0 else ""
        return f"{sign}{self.config.currency_symbol} {abs(amount):,.2f}"

    def stage_from_ticket_status(self, status: Optional[TicketStatus]) -> SopStage:
        return self.config.status_stages.get(status, self.config.default_stage)

    # Chat replies

    def ticket_status_summary(self, ctx: ReplyContext) -> FormattedReply:
        label = f"tiket #{ctx.ticket_number}"
        name = _clean_name(ctx.customer_name)
        greeting = f"{name}, " if name else ""
        status = ctx.status

        if status == TicketStatus.INTAKE:
            message = f"{greeting}{label} telah diterima dan kami sedang menjadualkan diagnosis awal."
        elif status == TicketStatus.DIAGNOSED:
            message = (
                f"{greeting}pasukan teknikal kami sedang menyiapkan ringkasan diagnosis untuk {label}. "
                "Anda akan menerima butiran sekejap lagi."
            )
        elif status == TicketStatus.AWAITING_APPROVAL:
            message = (
                f"{greeting}kami sedang menunggu kelulusan anda untuk {label}. "
                'Balas "setuju" untuk teruskan atau "tak setuju" jika mahu menangguhkan.'
            )
        elif status == TicketStatus.APPROVED:
            message = (
                f"{greeting}kelulusan bagi {label} diterima. "
                "Kami sedang menempah alat ganti dan akan berkongsi kemas kini pembaikan."
            )
        elif status == TicketStatus.REPAIRING:
            message = f"{greeting}pembaikan untuk {label} sedang dijalankan. Kami akan maklumkan sebarang kemajuan penting."
        elif status == TicketStatus.DONE:
            message = (
                f"{greeting}{label} telah siap dan invois tersedia untuk semakan. "
                "Balas 3 jika anda perlukan arahan pengambilan."
            )
        elif status == TicketStatus.PICKED_UP:
            message = (
                f"{greeting}{label} telah diambil. Terima kasih kerana mempercayai kami! "
                "Kongsikan maklum balas anda bila-bila masa."
            )
        elif status == TicketStatus.REJECTED:
            message = (
                f"{greeting}permintaan pembaikan untuk {label} telah dihentikan mengikut arahan anda. "
                "Hubungi kami jika mahu membuat perubahan."
            )
        else:
            message = f"{greeting}kami sedang menyemak status {label}."

        return FormattedReply(stage=self.stage_from_ticket_status(status), text=self.with_footer(message))

    def approval_accepted(self, ctx: ReplyContext) -> FormattedReply:
        name = _clean_name(ctx.customer_name)
        greeting = f"Terima kasih {name}!" if name else "Terima kasih!"
        cost_part = f" Anggaran kos kekal pada {ctx.estimated_cost}." if ctx.estimated_cost else ""
        message = (
            f"{greeting} Kelulusan anda untuk tiket #{ctx.ticket_number} telah direkodkan. "
            "Pasukan kami akan mula pembaikan serta berkongsi kemas kini penting melalui WhatsApp."
            f"{cost_part}"
        )
        return FormattedReply(stage=SopStage.AWAITING_APPROVAL, text=self.with_footer(message))

    def approval_rejected(self, ctx: ReplyContext) -> FormattedReply:
        name = _clean_name(ctx.customer_name)
        prefix = f"Baik {name}," if name else "Baik,"
        message = (
            f"{prefix} kami hentikan pembaikan untuk tiket #{ctx.ticket_number} seperti permintaan anda. "
            "Hubungi kami bila-bila masa jika mahu menukar keputusan."
        )
        return FormattedReply(stage=SopStage.AWAITING_APPROVAL, text=self.with_footer(message))

    def invoice_summary(self, ctx: ReplyContext) -> FormattedReply:
        if not ctx.invoice_number:
            message = (
                f"Invois untuk tiket #{ctx.ticket_number} belum tersedia lagi. "
                "Kami akan maklumkan sebaik sahaja ia siap."
            )
            return FormattedReply(stage=SopStage.DONE_INVOICE, text=self.with_footer(message))

        parts = [f"Invois #{ctx.invoice_number} untuk tiket #{ctx.ticket_number} sudah tersedia."]
        if ctx.invoice_total:
            parts.append(f"Jumlah perlu dibayar: {ctx.invoice_total}.")
        if ctx.invoice_status:
            parts.append(f"Status bayaran terkini: {ctx.invoice_status}.")
        return FormattedReply(stage=SopStage.DONE_INVOICE, text=self.with_footer(" ".join(parts)))

    def pickup_instructions(self, ctx: ReplyContext) -> FormattedReply:
        name = _clean_name(ctx.customer_name)
        greeting = f"{name}, " if name else ""
        label = f"tiket #{ctx.ticket_number}"
        status = ctx.status

        if status == TicketStatus.DONE:
            invoice_part = ""
            if ctx.invoice_total:
                suffix = f" ({ctx.invoice_status})" if ctx.invoice_status else ""
                invoice_part = f" Jumlah invois: {ctx.invoice_total}{suffix}."
            message = (
                f"{greeting}peranti untuk {label} sedia untuk diambil di kaunter kami. "
                f"Bawa tiket ini semasa pengambilan.{invoice_part}"
            )
            return FormattedReply(stage=SopStage.PICKUP_READY, text=self.with_footer(message))

        if status == TicketStatus.PICKED_UP:
            message = (
                f"{greeting}terima kasih kerana mengambil semula peranti bagi {label}. "
                "Kami hargai jika anda boleh tinggalkan review apabila ada masa."
            )
            return FormattedReply(stage=SopStage.PICKUP_COMPLETE, text=self.with_footer(message))

        if status == TicketStatus.AWAITING_APPROVAL:
            message = (
                f"{greeting}kami masih menunggu kelulusan anda untuk {label}. "
                'Balas "setuju" untuk kami teruskan atau "tak setuju" jika mahu menangguhkan.'
            )
            return FormattedReply(stage=SopStage.AWAITING_APPROVAL, text=self.with_footer(message))

        if status == TicketStatus.REJECTED:
            message = (
                f"{greeting}pembaikan untuk {label} telah dihentikan mengikut arahan anda. "
                "Hubungi kami jika mahu mengaktifkan semula tiket."
            )
            return FormattedReply(stage=SopStage.AWAITING_APPROVAL, text=self.with_footer(message))

        if status == TicketStatus.REPAIRING:
            progress = "sedang dibaiki"
        elif status == TicketStatus.APPROVED:
            progress = "dijadualkan untuk dibaiki"
        else:
            progress = "sedang diproses"
        message = (
            f"{greeting}peranti untuk {label} belum sedia untuk pickup lagi, statusnya {progress}. "
            "Kami akan maklumkan sebaik sahaja siap."
        )
        return FormattedReply(stage=SopStage.REPAIR_UPDATES, text=self.with_footer(message))

    def support_handoff(self, customer_name: Optional[str] = None) -> str:
        name = _clean_name(customer_name)
        prefix = f"Baik {name}," if name else "Baik,"
        return self.with_footer(f"{prefix} kami akan maklumkan staf kami untuk menghubungi anda secepat mungkin.")

    def no_ticket(self) -> str:
        return self.with_footer(
            "Maaf, kami tidak menemui tiket aktif yang berkait dengan nombor ini. "
            "Sila hubungi kaunter kami untuk bantuan lanjut."
        )

    def unknown_command(self) -> str:
        return self.with_footer("Maaf, kami tidak pasti permintaan anda.")

    def reply_for(self, command: Command, ctx: ReplyContext, decision_applied: bool = False) -> FormattedReply:
        """
        Reply for a command about a resolved ticket.

        Approve/reject only produce a confirmation when the decision was
        actually applied; otherwise the customer gets the status summary.
        """
        if command == Command.APPROVE and decision_applied:
            return self.approval_accepted(ctx)
        if command == Command.REJECT and decision_applied:
            return self.approval_rejected(ctx)
        if command == Command.INVOICE:
            return self.invoice_summary(ctx)
        if command == Command.PICKUP:
            return self.pickup_instructions(ctx)
        if command == Command.SUPPORT:
            return FormattedReply(
                stage=self.stage_from_ticket_status(ctx.status),
                text=self.support_handoff(ctx.customer_name),
            )
        if command == Command.UNKNOWN:
            return FormattedReply(stage=self.stage_from_ticket_status(ctx.status), text=self.unknown_command())
        return self.ticket_status_summary(ctx)

    # Staff-triggered notifications

    def intake_acknowledgement(self, ticket_number: str, customer_name: Optional[str] = None) -> FormattedReply:
        name = _clean_name(customer_name)
        greeting = f"Terima kasih {name}!" if name else "Terima kasih!"
        message = (
            f"{greeting} Tiket servis #{ticket_number} telah diterima. "
            "Kami akan jalankan diagnosis dan hubungi anda untuk langkah seterusnya."
        )
        return FormattedReply(stage=SopStage.INTAKE_ACK, text=message)

    def diagnosis_summary(
        self,
        ticket_number: str,
        summary: str,
        estimated_cost=None,
        recommended_actions: Optional[str] = None,
        awaiting_approval: bool = True,
    ) -> FormattedReply:
        parts = [f"Ringkasan diagnosis untuk tiket #{ticket_number}: {summary.strip().rstrip('.')}."]
        cost = self.format_currency(estimated_cost)
        if cost:
            parts.append(f"Anggaran kos: {cost}.")
        if recommended_actions:
            parts.append(f"Cadangan tindakan: {recommended_actions.strip().rstrip('.')}.")
        if awaiting_approval:
            parts.append('Balas "setuju" untuk teruskan pembaikan atau "tak setuju" untuk menolak.')
        return FormattedReply(stage=SopStage.DIAGNOSIS_SUMMARY, text=" ".join(parts))

    def staff_decision(self, ticket_number: str, approved: bool, notes: Optional[str] = None) -> FormattedReply:
        if approved:
            message = (
                f"Kerja pembaikan untuk tiket #{ticket_number} telah diluluskan. "
                "Kami akan mulakan servis sebaik sahaja bahagian disediakan."
            )
        else:
            message = (
                f"Pembaikan untuk tiket #{ticket_number} ditolak mengikut permintaan anda. "
                "Hubungi kami jika mahu membuat perubahan."
            )
        if notes:
            message = f"{message} {notes.strip()}"
        return FormattedReply(stage=SopStage.AWAITING_APPROVAL, text=message)

    def repair_update(
        self, ticket_number: str, description: str, status: Optional[TicketStatus] = None
    ) -> FormattedReply:
        parts = [f"Status terkini tiket #{ticket_number}: {description.strip().rstrip('.')}."]
        if status is not None:
            parts.append(f"Status kini: {STATUS_LABELS.get(status, STATUS_LABELS[TicketStatus.INTAKE])}.")
        return FormattedReply(stage=SopStage.REPAIR_UPDATES, text=" ".join(parts))

    def invoice_issued(self, invoice_number: str, total, customer_name: Optional[str] = None) -> FormattedReply:
        name = _clean_name(customer_name)
        greeting = f"Halo {name}!" if name else "Halo!"
        message = (
            f"{greeting} Invois {invoice_number} berjumlah {self.format_currency(total) or 'RM 0.00'}. "
            "Sila hubungi kami jika perlukan bantuan."
        )
        return FormattedReply(stage=SopStage.DONE_INVOICE, text=message)

    def pickup_notice(
        self,
        ticket_number: str,
        picked_up: bool,
        customer_name: Optional[str] = None,
        device_label: Optional[str] = None,
        invoice_number: Optional[str] = None,
        invoice_total=None,
        invoice_status: Optional[str] = None,
        message: Optional[str] = None,
    ) -> FormattedReply:
        name = _clean_name(customer_name)
        if message:
            base = message.strip()
        elif picked_up:
            thanks = f"Terima kasih {name}!" if name else "Terima kasih!"
            base = f"{thanks} Pembaikan untuk tiket #{ticket_number} selesai dan telah diambil. Jumpa lagi."
        else:
            base = (
                f"Peranti {device_label or 'anda'} kini sedia untuk diambil di kedai kami. "
                f"Sila tunjukkan tiket #{ticket_number} semasa pengambilan."
            )

        details = []
        total = self.format_currency(invoice_total)
        if invoice_number and total:
            details.append(f"Jumlah invois {invoice_number}: {total}.")
        if invoice_status:
            details.append(f"Status invois: {invoice_status}.")

        text = f"{base} {' '.join(details)}".strip()
        stage = SopStage.PICKUP_COMPLETE if picked_up else SopStage.PICKUP_READY
        return FormattedReply(stage=stage, text=text)


_default_formatter = WorkflowFormatter()


def format_menu_footer() -> str:
    return _default_formatter.config.menu_footer


def format_currency(value) -> Optional[str]:
    return _default_formatter.format_currency(value)


def stage_from_ticket_status(status: Optional[TicketStatus]) -> SopStage:
    return _default_formatter.stage_from_ticket_status(status)


def get_formatter() -> WorkflowFormatter:
    return _default_formatter
