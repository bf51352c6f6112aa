"""
CHIP-8 disassembler.
Turns instruction words into (mnemonic, operands, description) triples, used
for debug traces, fault messages and ROM listings.
"""

from typing import Dict, List, Optional, Tuple

from .machine import PROGRAM_START

# Mnemonic used for words with no defined encoding
DATA_MNEMONIC = "DW"

DisassemblyRow = Tuple[int, int, str, str, str]


class Chip8Disassembler:
    """
    Disassembler covering exactly the encodings the interpreter executes.
    Anything else is reported as a data word.
    """

    def disassemble_instruction(self, instruction: int) -> Tuple[str, str, str]:
        """
        Disassemble a single CHIP-8 instruction
        Returns: (mnemonic, operands, description)
        """
        opcode = (instruction & 0xF000) >> 12
        x = (instruction & 0x0F00) >> 8
        y = (instruction & 0x00F0) >> 4
        n = instruction & 0x000F
        kk = instruction & 0x00FF
        nnn = instruction & 0x0FFF

        if instruction == 0x00E0:
            return "CLS", "", "Clear display"
        elif instruction == 0x00EE:
            return "RET", "", "Return from subroutine"
        elif opcode == 0x1:
            return "JP", f"${nnn:03X}", f"Jump to {nnn:03X}"
        elif opcode == 0x2:
            return "CALL", f"${nnn:03X}", f"Call subroutine at {nnn:03X}"
        elif opcode == 0x3:
            return "SE", f"V{x:X}, #{kk:02X}", f"Skip if V{x:X} == {kk}"
        elif opcode == 0x4:
            return "SNE", f"V{x:X}, #{kk:02X}", f"Skip if V{x:X} != {kk}"
        elif opcode == 0x5:
            return "SE", f"V{x:X}, V{y:X}", f"Skip if V{x:X} == V{y:X}"
        elif opcode == 0x6:
            return "LD", f"V{x:X}, #{kk:02X}", f"Load {kk} into V{x:X}"
        elif opcode == 0x7:
            return "ADD", f"V{x:X}, #{kk:02X}", f"Add {kk} to V{x:X}"
        elif opcode == 0x8:
            decoded = self._disassemble_8xxx(x, y, n)
            if decoded:
                return decoded
        elif opcode == 0x9:
            return "SNE", f"V{x:X}, V{y:X}", f"Skip if V{x:X} != V{y:X}"
        elif opcode == 0xA:
            return "LD", f"I, ${nnn:03X}", f"Load {nnn:03X} into I"
        elif opcode == 0xB:
            return "JP", f"V0, ${nnn:03X}", f"Jump to V0 + {nnn:03X}"
        elif opcode == 0xC:
            return "RND", f"V{x:X}, #{kk:02X}", f"V{x:X} = random & {kk:02X}"
        elif opcode == 0xD:
            return "DRW", f"V{x:X}, V{y:X}, #{n:X}", f"Draw {n}-byte sprite at V{x:X}, V{y:X}"
        elif opcode == 0xE:
            if kk == 0x9E:
                return "SKP", f"V{x:X}", f"Skip if key V{x:X} pressed"
            elif kk == 0xA1:
                return "SKNP", f"V{x:X}", f"Skip if key V{x:X} not pressed"
        elif opcode == 0xF:
            decoded = self._disassemble_fxxx(x, kk)
            if decoded:
                return decoded

        return DATA_MNEMONIC, f"${instruction:04X}", "Undefined instruction"

    def _disassemble_8xxx(self, x: int, y: int, n: int) -> Optional[Tuple[str, str, str]]:
        """Disassemble 8xxx register operations"""
        table = {
            0x0: ("LD", f"V{x:X}, V{y:X}", f"V{x:X} = V{y:X}"),
            0x1: ("OR", f"V{x:X}, V{y:X}", f"V{x:X} |= V{y:X}"),
            0x2: ("AND", f"V{x:X}, V{y:X}", f"V{x:X} &= V{y:X}"),
            0x3: ("XOR", f"V{x:X}, V{y:X}", f"V{x:X} ^= V{y:X}"),
            0x4: ("ADD", f"V{x:X}, V{y:X}", f"V{x:X} += V{y:X}, VF = carry"),
            0x5: ("SUB", f"V{x:X}, V{y:X}", f"V{x:X} -= V{y:X}, VF = !borrow"),
            0x6: ("SHR", f"V{x:X}", f"V{x:X} >>= 1, VF = LSB"),
            0x7: ("SUBN", f"V{x:X}, V{y:X}", f"V{x:X} = V{y:X} - V{x:X}, VF = !borrow"),
            0xE: ("SHL", f"V{x:X}", f"V{x:X} <<= 1, VF = MSB"),
        }
        return table.get(n)

    def _disassemble_fxxx(self, x: int, kk: int) -> Optional[Tuple[str, str, str]]:
        """Disassemble Fxxx timer and memory operations"""
        table = {
            0x07: ("LD", f"V{x:X}, DT", f"V{x:X} = delay timer"),
            0x0A: ("LD", f"V{x:X}, K", f"Wait for key press, store in V{x:X}"),
            0x15: ("LD", f"DT, V{x:X}", f"Delay timer = V{x:X}"),
            0x18: ("LD", f"ST, V{x:X}", f"Sound timer = V{x:X}"),
            0x1E: ("ADD", f"I, V{x:X}", f"I += V{x:X}"),
            0x29: ("LD", f"F, V{x:X}", f"I = sprite address for digit V{x:X}"),
            0x33: ("LD", f"B, V{x:X}", f"Store BCD of V{x:X} at I, I+1, I+2"),
            0x55: ("LD", f"[I], V{x:X}", f"Store V0-V{x:X} at I"),
            0x65: ("LD", f"V{x:X}, [I]", f"Load V0-V{x:X} from I"),
        }
        return table.get(kk)

    def format_instruction(self, instruction: int) -> str:
        mnemonic, operands, _ = self.disassemble_instruction(instruction)
        return f"{mnemonic} {operands}".strip()

    def disassemble_rom(self, rom_data: bytes, start_address: int = PROGRAM_START) -> List[DisassemblyRow]:
        """
        Disassemble entire ROM
        Returns list of (address, instruction, mnemonic, operands, description)
        """
        disassembly = []

        # A trailing odd byte cannot form an instruction
        for offset in range(0, len(rom_data) - 1, 2):
            instruction = (rom_data[offset] << 8) | rom_data[offset + 1]
            mnemonic, operands, description = self.disassemble_instruction(instruction)
            disassembly.append((start_address + offset, instruction, mnemonic, operands, description))

        return disassembly

    def analyze_control_flow(self, disassembly: List[DisassemblyRow]) -> Dict[str, list]:
        """Collect jumps, calls, conditional skips and backward jumps"""
        analysis = {
            'jumps': [],
            'calls': [],
            'branches': [],
            'loops': [],
        }

        for address, instruction, mnemonic, operands, _ in disassembly:
            target = instruction & 0x0FFF
            if mnemonic == "JP" and not operands.startswith("V0"):
                analysis['jumps'].append((address, target))
                if target <= address:
                    analysis['loops'].append((address, target))
            elif mnemonic == "CALL":
                analysis['calls'].append((address, target))
            elif mnemonic in ("SE", "SNE", "SKP", "SKNP"):
                analysis['branches'].append(address)

        return analysis

    def format_listing(self, disassembly: List[DisassemblyRow]) -> str:
        """Render rows as an address/opcode/mnemonic listing"""
        lines = ["Address  Opcode  Mnemonic Operands        Description"]
        lines.append("=" * 60)
        for address, instruction, mnemonic, operands, description in disassembly:
            lines.append(f"${address:03X}    ${instruction:04X}   {mnemonic:<8} {operands:<15} ; {description}")

        flow = self.analyze_control_flow(disassembly)
        lines.append("")
        lines.append(
            f"Jumps: {len(flow['jumps'])}  Calls: {len(flow['calls'])}  "
            f"Branches: {len(flow['branches'])}  Loops: {len(flow['loops'])}"
        )
        return "\n".join(lines)
