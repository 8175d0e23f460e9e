"""Code generation commands for admins."""
import logging
import os
from datetime import datetime
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from config import config
from storage.database import CodeDatabase
from storage.issuance import issue_codes
from utils.errors import (
    AttemptsExhaustedError,
    CapacityExceededError,
    InvalidOptionsError,
    UnknownBatchError
)

logger = logging.getLogger(__name__)

# Batches up to this size are listed in the reply instead of attached as CSV
INLINE_LIMIT = 20

MAX_SPARSITY = 1000


def check_generate_request(quantity: int, sparsity: Optional[float], max_batch_size: int) -> Optional[str]:
    """Return the reply for an out-of-range request, or None when it can run."""
    if quantity < 1 or quantity > max_batch_size:
        return f"❌ Quantity must be between 1 and {max_batch_size}."
    # Written so NaN fails too
    if sparsity is not None and not (1 <= sparsity <= MAX_SPARSITY):
        return f"❌ Sparsity must be between 1 and {MAX_SPARSITY}."
    return None


def format_codes_message(batch_id: str, template: str, codes: List[str]) -> str:
    """Reply text listing a small batch of codes."""
    lines = "\n".join(f"`{code}`" for code in codes)
    return (
        f"✅ Generated {len(codes)} code(s) for `{template}`\n"
        f"Batch ID: `{batch_id}`\n"
        f"{lines}"
    )


def format_batches_message(batches: List[dict]) -> str:
    """Reply text summarizing issued batches."""
    if not batches:
        return "No batches issued yet."
    lines = [
        f"`{b['batch_id']}` • `{b['template']}` • {b['count']} code(s) • {b['created_at']}"
        for b in batches
    ]
    return "\n".join(lines)


class CodeCog(commands.Cog):
    """Cog for issuing and exporting code batches."""

    def __init__(self, bot: commands.Bot):
        """Initialize the code cog."""
        self.bot = bot
        self.database = CodeDatabase(config.DATABASE_PATH)

    async def cog_load(self):
        """Called when the cog is loaded."""
        await self.database.setup_database()
        logger.info("Code database initialized")

    def _is_admin_channel(self, interaction: discord.Interaction) -> bool:
        """Check if command is used in admin channel."""
        return interaction.channel_id == config.ADMIN_CHANNEL_ID

    async def _reject_outside_admin_channel(self, interaction: discord.Interaction) -> bool:
        if self._is_admin_channel(interaction):
            return False
        await interaction.response.send_message(
            "❌ This command can only be used in the admin channel.",
            ephemeral=True
        )
        return True

    @app_commands.command(name="generate_codes", description="Generate unique codes from a template (admin only)")
    @app_commands.describe(
        template="Template, e.g. GIFT-*+ (# digit, * letter/digit, + grows as needed)",
        quantity="Number of codes to generate",
        sparsity="Optional: spread codes over a larger space (1 or more)"
    )
    async def generate(
        self,
        interaction: discord.Interaction,
        template: str,
        quantity: int = 1,
        sparsity: Optional[float] = None
    ):
        """Generate and store a batch of codes."""
        if await self._reject_outside_admin_channel(interaction):
            return

        problem = check_generate_request(quantity, sparsity, config.MAX_BATCH_SIZE)
        if problem:
            await interaction.response.send_message(
                problem,
                ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)

        try:
            overrides = {'sparsity': sparsity} if sparsity is not None else {}
            options = config.generator_options(**overrides)
            batch_id, codes = await issue_codes(self.database, template, quantity, options)

            if len(codes) <= INLINE_LIMIT:
                await interaction.followup.send(
                    format_codes_message(batch_id, template, codes),
                    ephemeral=True
                )
                return

            filename = f"codes_{batch_id}.csv"
            output_path = os.path.join(config.EXPORT_DIR, filename)
            os.makedirs(config.EXPORT_DIR, exist_ok=True)
            await self.database.export_to_csv(output_path, batch_id=batch_id)

            file = discord.File(output_path, filename=filename)
            await interaction.followup.send(
                f"✅ Generated {len(codes)} code(s) for `{template}`\n"
                f"Batch ID: `{batch_id}`",
                file=file,
                ephemeral=True
            )

        except CapacityExceededError as e:
            await interaction.followup.send(
                f"❌ Template `{template}` is too small: {e}\n"
                f"Add placeholders or use `#+` / `*+` so the code can grow.",
                ephemeral=True
            )
        except AttemptsExhaustedError as e:
            await interaction.followup.send(
                f"❌ Could not find enough free codes for `{template}`: {e}",
                ephemeral=True
            )
        except InvalidOptionsError as e:
            await interaction.followup.send(f"❌ Invalid request: {e}", ephemeral=True)
        except Exception as e:
            await interaction.followup.send(
                f"❌ Error generating codes: {str(e)}",
                ephemeral=True
            )
            logger.exception("Error in generate_codes")

    @app_commands.command(name="export_codes", description="Export issued codes to CSV (admin only)")
    @app_commands.describe(
        template="Optional: only codes of this template",
        batch_id="Optional: only codes of this batch"
    )
    async def export_codes(
        self,
        interaction: discord.Interaction,
        template: Optional[str] = None,
        batch_id: Optional[str] = None
    ):
        """Export issued codes to a CSV file."""
        if await self._reject_outside_admin_channel(interaction):
            return

        await interaction.response.defer(ephemeral=True)

        try:
            # Generate filename
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            if batch_id:
                filename = f"codes_{batch_id}.csv"
            else:
                filename = f"codes_all_{timestamp}.csv"

            output_path = os.path.join(config.EXPORT_DIR, filename)
            os.makedirs(config.EXPORT_DIR, exist_ok=True)

            code_count = await self.database.export_to_csv(output_path, template, batch_id)

            if code_count == 0:
                await interaction.followup.send(
                    "❌ No codes found to export.",
                    ephemeral=True
                )
                return

            file = discord.File(output_path, filename=filename)
            await interaction.followup.send(
                f"✅ Exported {code_count} code(s) to CSV:",
                file=file,
                ephemeral=True
            )

        except Exception as e:
            await interaction.followup.send(
                f"❌ Error exporting CSV: {str(e)}",
                ephemeral=True
            )
            logger.exception("Error in export_codes")

    @app_commands.command(name="list_batches", description="List issued code batches (admin only)")
    @app_commands.describe(template="Optional: only batches of this template")
    async def list_batches(self, interaction: discord.Interaction, template: Optional[str] = None):
        """Show the issued batches, newest first."""
        if await self._reject_outside_admin_channel(interaction):
            return

        try:
            batches = await self.database.get_batches(template)
            await interaction.response.send_message(
                format_batches_message(batches[:INLINE_LIMIT]),
                ephemeral=True
            )
        except Exception as e:
            await interaction.response.send_message(
                f"❌ Error listing batches: {str(e)}",
                ephemeral=True
            )
            logger.exception("Error in list_batches")

    @app_commands.command(name="revoke_batch", description="Delete a batch so its codes can be issued again (admin only)")
    @app_commands.describe(batch_id="Batch ID to delete")
    async def revoke_batch(self, interaction: discord.Interaction, batch_id: str):
        """Delete every code of a batch."""
        if await self._reject_outside_admin_channel(interaction):
            return

        try:
            deleted = await self.database.delete_batch(batch_id)
            await interaction.response.send_message(
                f"✅ Revoked batch `{batch_id}` ({deleted} code(s))",
                ephemeral=True
            )
        except UnknownBatchError:
            await interaction.response.send_message(
                f"❌ No batch found with ID `{batch_id}`.",
                ephemeral=True
            )
        except Exception as e:
            await interaction.response.send_message(
                f"❌ Error revoking batch: {str(e)}",
                ephemeral=True
            )
            logger.exception("Error in revoke_batch")


async def setup(bot: commands.Bot):
    """Setup function to load the cog."""
    await bot.add_cog(CodeCog(bot))
